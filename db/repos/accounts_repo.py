from __future__ import annotations

import sqlite3
from typing import List, Optional

from db.repos._rows import fetch_dicts
from models.enrichment_account import EnrichmentAccount
from utils.clock import now_iso


class AccountsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def upsert(self, account_id: str, label: Optional[str] = None, is_active: bool = True) -> int:
        account_id = (account_id or "").strip()
        if not account_id:
            raise ValueError("account_id is required")
        cur = self.conn.cursor()
        cur.execute(
            (
                "INSERT INTO enrichment_accounts (account_id, label, is_active) VALUES (?, ?, ?) "
                "ON CONFLICT(account_id) DO UPDATE SET label = COALESCE(excluded.label, label), is_active = excluded.is_active"
            ),
            (account_id, label, 1 if is_active else 0),
        )
        cur.execute("SELECT id FROM enrichment_accounts WHERE account_id = ?", (account_id,))
        row = cur.fetchone()
        self.conn.commit()
        return int(row[0])

    def list_active(self) -> List[EnrichmentAccount]:
        rows = fetch_dicts(
            self.conn,
            "SELECT * FROM enrichment_accounts WHERE is_active = 1 ORDER BY id",
        )
        return [EnrichmentAccount.model_validate({**r, "is_active": bool(r["is_active"])}) for r in rows]

    def record_use(self, account_id: str) -> None:
        self.conn.execute(
            "UPDATE enrichment_accounts SET usage_count = usage_count + 1, last_used_at = ? WHERE account_id = ?",
            (now_iso(), account_id),
        )
        self.conn.commit()
