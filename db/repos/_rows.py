from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Iterable, List, Optional


def dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    # Preserve non-ASCII characters (accents in post text) in stored JSON
    return json.dumps(value, ensure_ascii=False, default=str)


def loads(text: Optional[str], default: Any = None) -> Any:
    if text in (None, ""):
        return default
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return default


def fetch_dicts(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
    cur = conn.cursor()
    cur.row_factory = sqlite3.Row
    cur.execute(sql, tuple(params))
    return [dict(r) for r in cur.fetchall()]


def placeholders(n: int) -> str:
    return ", ".join(["?"] * n)
