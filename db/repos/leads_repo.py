from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional, Sequence

from db.repos._rows import dumps, fetch_dicts, loads, placeholders
from models.lead_record import LeadRecord, history_columns

_BASE_COLUMNS = [
    "author_profile_id", "author_name", "first_name", "last_name", "author_headline", "author_profile_url",
    "dataset_id", "latest_post_urn", "latest_post_url", "latest_post_date", "text", "title",
    "posted_at_iso", "posted_at_timestamp", "gate2_location", "gate3_category", "gate3_selected_roles_json",
    "gate3_justification", "company_name", "company_position", "company_linkedin_id", "phone_number",
]
_CLIENT_COLUMNS = [
    "is_client_lead", "matched_client_id", "matched_client_name", "has_previous_client_company",
    "previous_client_companies_json", "client_history_alert", "processing_status", "created_at",
]
INSERT_COLUMNS = _BASE_COLUMNS + history_columns() + _CLIENT_COLUMNS


def _row_values(lead: LeadRecord) -> tuple:
    data = lead.model_dump()
    data["gate3_selected_roles_json"] = dumps(lead.gate3_selected_roles)
    data["previous_client_companies_json"] = dumps(lead.previous_client_companies)
    data["is_client_lead"] = 1 if lead.is_client_lead else 0
    data["has_previous_client_company"] = 1 if lead.has_previous_client_company else 0
    values: List[Any] = []
    for col in INSERT_COLUMNS:
        if col.startswith("company_") and col in lead.work_history:
            value = lead.work_history[col]
        elif col.endswith("_is_current") and col.startswith("company_"):
            value = 0
        else:
            value = data.get(col)
        if isinstance(value, bool):
            value = 1 if value else 0
        values.append(value)
    return tuple(values)


def _to_lead(row: Dict[str, Any]) -> LeadRecord:
    row["gate3_selected_roles"] = loads(row.pop("gate3_selected_roles_json", None), [])
    row["previous_client_companies"] = loads(row.pop("previous_client_companies_json", None), [])
    row["work_history"] = {col: row.pop(col, None) for col in history_columns()}
    row["is_client_lead"] = bool(row.get("is_client_lead"))
    row["has_previous_client_company"] = bool(row.get("has_previous_client_company"))
    return LeadRecord.model_validate(row)


class LeadsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def ids_by_profile(self, profile_ids: Sequence[str]) -> Dict[str, int]:
        """Existing lead ids keyed by author_profile_id."""
        ids = [p for p in dict.fromkeys(profile_ids) if p]
        if not ids:
            return {}
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT author_profile_id, id FROM leads WHERE author_profile_id IN ({placeholders(len(ids))})",
            tuple(ids),
        )
        return {r[0]: int(r[1]) for r in cur.fetchall()}

    def insert_many(self, leads: Sequence[LeadRecord], commit: bool = True) -> Dict[str, int]:
        """Bulk insert in one statement batch; returns new lead ids keyed by author_profile_id.

        Runs inside the caller's transaction when commit=False.
        """
        if not leads:
            return {}
        sql = f"INSERT INTO leads ({', '.join(INSERT_COLUMNS)}) VALUES ({placeholders(len(INSERT_COLUMNS))})"
        self.conn.executemany(sql, [_row_values(l) for l in leads])
        ids = self.ids_by_profile([l.author_profile_id for l in leads])
        if commit:
            self.conn.commit()
        return ids

    def get_by_profile(self, author_profile_id: str) -> Optional[LeadRecord]:
        rows = fetch_dicts(self.conn, "SELECT * FROM leads WHERE author_profile_id = ?", (author_profile_id,))
        return _to_lead(rows[0]) if rows else None

    def list_all(self, dataset_id: Optional[str] = None, limit: int = 1000) -> List[LeadRecord]:
        sql = "SELECT * FROM leads"
        params: List[Any] = []
        if dataset_id:
            sql += " WHERE dataset_id = ?"
            params.append(dataset_id)
        sql += " ORDER BY id LIMIT ?"
        params.append(limit)
        return [_to_lead(r) for r in fetch_dicts(self.conn, sql, params)]

    def count(self, dataset_id: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM leads"
        params: List[Any] = []
        if dataset_id:
            sql += " WHERE dataset_id = ?"
            params.append(dataset_id)
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return int(cur.fetchone()[0])
