from __future__ import annotations

import sqlite3
from typing import List, Optional

from db.repos._rows import fetch_dicts
from models.client import Client


class ClientsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def add(self, company_name: str, company_linkedin_id: Optional[str] = None, tracking_enabled: bool = True) -> int:
        name = (company_name or "").strip()
        if not name:
            raise ValueError("company_name is required")
        cur = self.conn.cursor()
        cur.execute(
            "INSERT INTO clients (company_name, company_linkedin_id, tracking_enabled) VALUES (?, ?, ?)",
            (name, (company_linkedin_id or "").strip() or None, 1 if tracking_enabled else 0),
        )
        self.conn.commit()
        return int(cur.lastrowid)

    def list_tracked(self) -> List[Client]:
        rows = fetch_dicts(
            self.conn,
            "SELECT id, company_name, company_linkedin_id, tracking_enabled FROM clients WHERE tracking_enabled = 1 ORDER BY id",
        )
        return [Client.model_validate({**r, "tracking_enabled": bool(r["tracking_enabled"])}) for r in rows]
