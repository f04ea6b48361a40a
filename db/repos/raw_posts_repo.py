from __future__ import annotations

import sqlite3
from typing import Any, Dict, Iterable, List, Optional

from db.repos._rows import dumps, fetch_dicts, loads, placeholders
from models.raw_post import RawPost


class RawPostsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert_many(self, dataset_id: str, records: Iterable[Dict[str, Any]]) -> int:
        """Store scraped posts for a dataset; returns number of rows written."""
        sql = (
            "INSERT INTO posts_raw (dataset_id, urn, url, text, title, posted_at_iso, posted_at_timestamp, "
            "author_type, author_profile_url, author_profile_id, author_name, author_headline, is_repost, raw_data_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        )
        rows = []
        for rec in records:
            raw = RawPost.model_validate({**rec, "dataset_id": dataset_id})
            rows.append((
                dataset_id, raw.urn, raw.url, raw.text, raw.title, raw.posted_at_iso, raw.posted_at_timestamp,
                raw.author_type, raw.author_profile_url, raw.author_profile_id, raw.author_name, raw.author_headline,
                1 if raw.is_repost else 0, dumps(raw.raw_data or rec),
            ))
        self.conn.executemany(sql, rows)
        self.conn.commit()
        return len(rows)

    def fetch_unprocessed(self, dataset_id: str, limit: int) -> List[RawPost]:
        rows = fetch_dicts(
            self.conn,
            "SELECT * FROM posts_raw WHERE dataset_id = ? AND processed IS NULL ORDER BY id LIMIT ?",
            (dataset_id, limit),
        )
        out: List[RawPost] = []
        for row in rows:
            row["raw_data"] = loads(row.pop("raw_data_json", None), {})
            row["is_repost"] = bool(row.get("is_repost"))
            row["processed"] = bool(row.get("processed"))
            out.append(RawPost.model_validate(row))
        return out

    def mark_processed(self, ids: List[int], commit: bool = True) -> None:
        if not ids:
            return
        self.conn.execute(
            f"UPDATE posts_raw SET processed = 1 WHERE id IN ({placeholders(len(ids))})",
            tuple(ids),
        )
        if commit:
            self.conn.commit()

    def count_unprocessed(self, dataset_id: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM posts_raw WHERE processed IS NULL"
        params: list = []
        if dataset_id:
            sql += " AND dataset_id = ?"
            params.append(dataset_id)
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return int(cur.fetchone()[0])
