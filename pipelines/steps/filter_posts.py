from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional, Set

from config.settings import Settings, get_settings
from db.repos.posts_repo import PostsRepo
from db.repos.raw_posts_repo import RawPostsRepo
from models.raw_post import RawPost
from pipelines.runner import RunContext, StageResult
from services.post_validator import PostValidator

logger = logging.getLogger(__name__)


class FilterPosts:
    """Validate, deduplicate and promote scraped posts to queued_gate1.

    Promotion and marking raw rows processed share one transaction: a store
    failure leaves the whole raw batch unprocessed for a full retry.
    """

    name = "filter"

    def __init__(self, conn: sqlite3.Connection, settings: Optional[Settings] = None):
        self.conn = conn
        self.settings = settings or get_settings()
        self.default_batch_size = self.settings.filter_batch_size

    def run(self, ctx: RunContext) -> StageResult:
        if not ctx.dataset_id:
            raise ValueError("The ingestion filter needs a dataset id")
        raw_repo = RawPostsRepo(self.conn)
        posts = PostsRepo(self.conn)
        result = StageResult(stage=self.name, batch_size=ctx.batch_size)

        raws = raw_repo.fetch_unprocessed(ctx.dataset_id, ctx.batch_size)
        logger.info("Filter batch start", extra={"step": self.name, "dataset_id": ctx.dataset_id, "status": f"raw={len(raws)}"})
        if not raws:
            return result

        validator = PostValidator(self.settings.min_post_length)
        candidates: List[RawPost] = []
        filtered = 0
        for raw in raws:
            errors = validator.validate(raw)
            if errors:
                filtered += 1
                logger.debug("Raw post dropped", extra={"step": self.name, "post_id": raw.id, "error": "; ".join(errors)})
                continue
            candidates.append(raw)

        existing = posts.existing_keys(
            [c.dedupe_key for c in candidates if c.dedupe_key],
            [c.urn for c in candidates if c.urn],
        )
        seen: Set[str] = set()
        to_insert: List[RawPost] = []
        duplicates = 0
        for raw in candidates:
            keys = {k for k in (raw.dedupe_key, raw.urn) if k}
            if keys & existing or keys & seen:
                duplicates += 1
                continue
            seen.update(keys)
            to_insert.append(raw)

        try:
            inserted = posts.insert_queued(to_insert, commit=False)
            raw_repo.mark_processed([r.id for r in raws if r.id is not None], commit=False)
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

        result.processed = len(raws)
        result.advanced = inserted
        result.rejected = filtered
        result.details = {
            "raw_posts_processed": len(raws),
            "posts_filtered": filtered,
            "posts_duplicates": duplicates,
            "posts_queued": inserted,
        }
        logger.info(
            "Filter batch done",
            extra={
                "step": self.name,
                "dataset_id": ctx.dataset_id,
                "status": f"queued={inserted} filtered={filtered} duplicates={duplicates}",
            },
        )
        return result
