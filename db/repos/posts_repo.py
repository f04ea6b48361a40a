from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from db.repos._rows import dumps, fetch_dicts, loads, placeholders
from models.post_record import PostRecord
from models.post_status import PostStatus, assert_transition
from models.raw_post import RawPost
from utils.clock import now_iso

logger = logging.getLogger(__name__)

# JSON text columns and the PostRecord field each one decodes into
_JSON_COLUMNS = {
    "raw_data_json": ("raw_data", {}),
    "gate1_response_json": ("gate1_response", None),
    "gate2_response_json": ("gate2_response", None),
    "gate3_selected_roles_json": ("gate3_selected_roles", []),
    "gate3_response_json": ("gate3_response", None),
    "enrichment_payload_json": ("enrichment_payload", None),
}

# Columns a stage may write alongside a status change
_WRITABLE = {
    "gate1_verdict", "gate1_roles", "gate1_response_json",
    "gate2_verdict", "gate2_language", "gate2_location", "gate2_reason", "gate2_response_json",
    "gate3_category", "gate3_selected_roles_json", "gate3_justification", "gate3_response_json",
    "enrichment_company", "enrichment_position", "enrichment_company_id", "enrichment_payload_json",
    "enrichment_account_id", "enriched_at",
    "lead_id", "last_error",
}


def _to_record(row: Dict[str, Any]) -> PostRecord:
    for column, (field, default) in _JSON_COLUMNS.items():
        row[field] = loads(row.pop(column, None), default)
    return PostRecord.model_validate(row)


class PostsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Ingestion ---
    def existing_keys(self, urls: Sequence[str], urns: Sequence[str]) -> Set[str]:
        """Return which of the given URLs/URNs are already in the pipeline."""
        found: Set[str] = set()
        cur = self.conn.cursor()
        for column, values in (("url", list(urls)), ("urn", list(urns))):
            # Chunk to stay under SQLite's host parameter limit
            for start in range(0, len(values), 500):
                chunk = values[start:start + 500]
                if not chunk:
                    continue
                cur.execute(f"SELECT {column} FROM posts WHERE {column} IN ({placeholders(len(chunk))})", tuple(chunk))
                found.update(r[0] for r in cur.fetchall() if r[0])
        return found

    def insert_queued(self, posts: Iterable[RawPost], commit: bool = True) -> int:
        """Promote validated raw posts into the pipeline at queued_gate1."""
        assert_transition(None, PostStatus.QUEUED_GATE1)
        ts = now_iso()
        sql = (
            "INSERT INTO posts (dataset_id, urn, url, text, title, posted_at_iso, posted_at_timestamp, author_type, "
            "author_profile_url, author_profile_id, author_name, author_headline, raw_data_json, status, created_at, last_updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        )
        rows = [
            (
                p.dataset_id, p.urn, p.dedupe_key, p.text, p.title, p.posted_at_iso, p.posted_at_timestamp, p.author_type,
                p.author_profile_url, p.author_profile_id, p.author_name, p.author_headline, dumps(p.raw_data),
                PostStatus.QUEUED_GATE1.value, ts, ts,
            )
            for p in posts
        ]
        if rows:
            self.conn.executemany(sql, rows)
        if commit:
            self.conn.commit()
        return len(rows)

    # --- Stage ownership ---
    def claim(self, queued: PostStatus, processing: PostStatus, dataset_id: Optional[str], limit: int) -> List[PostRecord]:
        """Atomically move up to `limit` queued posts to `processing` and return them.

        A single UPDATE ... RETURNING statement, so a concurrent invocation of the
        same stage cannot pick up the same rows.
        """
        assert_transition(queued, processing)
        if limit <= 0:
            return []
        ts = now_iso()
        where = "status = ?"
        params: List[Any] = [queued.value]
        if dataset_id:
            where += " AND dataset_id = ?"
            params.append(dataset_id)
        sql = (
            f"UPDATE posts SET status = ?, last_updated_at = ? "
            f"WHERE id IN (SELECT id FROM posts WHERE {where} ORDER BY created_at, id LIMIT ?) AND status = ? "
            f"RETURNING id"
        )
        cur = self.conn.cursor()
        cur.execute(sql, (processing.value, ts, *params, limit, queued.value))
        ids = [int(r[0]) for r in cur.fetchall()]
        self.conn.commit()
        if not ids:
            return []
        records = self.get_many(ids)
        records.sort(key=lambda r: r.id)
        return records

    def transition(
        self,
        post_id: int,
        expected: PostStatus,
        target: PostStatus,
        fields: Optional[Dict[str, Any]] = None,
        *,
        bump_retry: bool = False,
        commit: bool = True,
    ) -> bool:
        """Guarded status change; returns False when the post is no longer in `expected`."""
        assert_transition(expected, target)
        ts = now_iso()
        sets = ["status = ?", "last_updated_at = ?"]
        values: List[Any] = [target.value, ts]
        for key, value in (fields or {}).items():
            if key not in _WRITABLE:
                raise KeyError(f"Column not writable by a stage: {key}")
            if key.endswith("_json") and not isinstance(value, (str, type(None))):
                value = dumps(value)
            sets.append(f"{key} = ?")
            values.append(value)
        if bump_retry:
            sets.append("retry_count = retry_count + 1")
            sets.append("last_retry_at = ?")
            values.append(ts)
        sql = f"UPDATE posts SET {', '.join(sets)} WHERE id = ? AND status = ?"
        cur = self.conn.cursor()
        cur.execute(sql, (*values, post_id, expected.value))
        changed = cur.rowcount == 1
        if commit:
            self.conn.commit()
        if not changed:
            logger.warning(
                "Lost claim on post; status changed underneath",
                extra={"post_id": post_id, "status": f"{expected.value}->{target.value}"},
            )
        return changed

    def mark_error(self, post_id: int, expected: PostStatus, error_status: PostStatus, error: str, commit: bool = True) -> bool:
        return self.transition(
            post_id, expected, error_status, {"last_error": (error or "")[:1000]}, bump_retry=True, commit=commit
        )

    # --- Reads ---
    def get(self, post_id: int) -> Optional[PostRecord]:
        rows = fetch_dicts(self.conn, "SELECT * FROM posts WHERE id = ?", (post_id,))
        return _to_record(rows[0]) if rows else None

    def get_many(self, ids: Sequence[int]) -> List[PostRecord]:
        if not ids:
            return []
        rows = fetch_dicts(self.conn, f"SELECT * FROM posts WHERE id IN ({placeholders(len(ids))})", tuple(ids))
        return [_to_record(r) for r in rows]

    def list_by_status(self, statuses: Sequence[PostStatus], dataset_id: Optional[str] = None, limit: int = 1000) -> List[PostRecord]:
        if not statuses:
            return []
        sql = f"SELECT * FROM posts WHERE status IN ({placeholders(len(statuses))})"
        params: List[Any] = [s.value for s in statuses]
        if dataset_id:
            sql += " AND dataset_id = ?"
            params.append(dataset_id)
        sql += " ORDER BY id LIMIT ?"
        params.append(limit)
        return [_to_record(r) for r in fetch_dicts(self.conn, sql, params)]

    def count_by_status(self, dataset_id: Optional[str] = None) -> Dict[str, int]:
        sql = "SELECT status, SUM(n) FROM v_post_status_counts"
        params: List[Any] = []
        if dataset_id:
            sql += " WHERE dataset_id = ?"
            params.append(dataset_id)
        sql += " GROUP BY status"
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return {status: int(n) for status, n in cur.fetchall()}

    def count_stale(self, statuses: Sequence[PostStatus], updated_before: str, dataset_id: Optional[str] = None) -> int:
        if not statuses:
            return 0
        sql = f"SELECT COUNT(*) FROM posts WHERE status IN ({placeholders(len(statuses))}) AND last_updated_at < ?"
        params: List[Any] = [s.value for s in statuses] + [updated_before]
        if dataset_id:
            sql += " AND dataset_id = ?"
            params.append(dataset_id)
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return int(cur.fetchone()[0])

    def find_retry_candidates(
        self,
        statuses: Sequence[PostStatus],
        *,
        post_ids: Optional[Sequence[int]] = None,
        updated_before: Optional[str] = None,
        dataset_id: Optional[str] = None,
        below_retry_count: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Tuple[int, str, int, Optional[str]]]:
        """Return (id, status, retry_count, last_retry_at), oldest first."""
        if not statuses:
            return []
        sql = f"SELECT id, status, retry_count, last_retry_at FROM posts WHERE status IN ({placeholders(len(statuses))})"
        params: List[Any] = [s.value for s in statuses]
        if post_ids:
            sql += f" AND id IN ({placeholders(len(post_ids))})"
            params.extend(post_ids)
        if updated_before:
            sql += " AND last_updated_at < ?"
            params.append(updated_before)
        if dataset_id:
            sql += " AND dataset_id = ?"
            params.append(dataset_id)
        if below_retry_count is not None:
            sql += " AND retry_count < ?"
            params.append(below_retry_count)
        sql += " ORDER BY last_updated_at, id LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return [(int(r[0]), r[1], int(r[2] or 0), r[3]) for r in cur.fetchall()]
