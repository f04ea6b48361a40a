from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from config.settings import Settings, get_settings
from db.repos.posts_repo import PostsRepo
from models.post_status import PostStatus, Stage
from pipelines.runner import RunContext, StageResult
from ports.oracles import EnrichmentOraclePort
from ports.repos import AccountPoolPort
from services.profile_extraction import extract_profile, profile_identifier
from services.unipile_client import EnrichmentError
from utils.clock import now_iso

logger = logging.getLogger(__name__)


class EnrichProfiles:
    """Fetch the author's profile for each qualified post, one call at a time.

    One account is acquired for the whole batch before anything is claimed;
    spacing between calls is the enrichment client's job.
    """

    name = "enrichment"
    stage = Stage.ENRICHMENT

    def __init__(
        self,
        conn: sqlite3.Connection,
        oracle: EnrichmentOraclePort,
        accounts: AccountPoolPort,
        settings: Optional[Settings] = None,
    ):
        self.conn = conn
        self.oracle = oracle
        self.accounts = accounts
        self.settings = settings or get_settings()
        self.default_batch_size = self.settings.enrichment_batch_size

    def run(self, ctx: RunContext) -> StageResult:
        repo = PostsRepo(self.conn)
        result = StageResult(stage=self.name, batch_size=ctx.batch_size)
        backlog = repo.count_by_status(ctx.dataset_id).get(self.stage.queued.value, 0)
        if backlog == 0:
            return result

        account = self.accounts.acquire()
        posts = repo.claim(self.stage.queued, self.stage.processing, ctx.dataset_id, ctx.batch_size)
        logger.info(
            "Enrichment batch start",
            extra={"step": self.name, "dataset_id": ctx.dataset_id, "status": f"claimed={len(posts)} account={account.account_id}"},
        )
        result.details["account_id"] = account.account_id

        for post in posts:
            result.processed += 1
            try:
                ident = profile_identifier(post.author_profile_id, post.author_profile_url)
                if not ident:
                    raise EnrichmentError("No profile identifier on post")
                payload = self.oracle.fetch_profile(ident, account.account_id)
                extraction = extract_profile(payload)
            except Exception as e:
                logger.warning("Enrichment failed", extra={"step": self.name, "post_id": post.id, "error": str(e)})
                if repo.mark_error(post.id, self.stage.processing, self.stage.error, f"{type(e).__name__}: {e}"):
                    result.failed += 1
                else:
                    result.lost += 1
                continue

            fields = {
                "enrichment_company": extraction.current_company,
                "enrichment_position": extraction.current_position,
                "enrichment_company_id": extraction.current_company_linkedin_id,
                "enrichment_payload_json": payload,
                "enrichment_account_id": account.account_id,
                "enriched_at": now_iso(),
            }
            if repo.transition(post.id, self.stage.processing, PostStatus.QUEUED_LEAD_CREATION, fields):
                result.advanced += 1
            else:
                result.lost += 1

        logger.info(
            "Enrichment batch done",
            extra={
                "step": self.name,
                "dataset_id": ctx.dataset_id,
                "status": f"processed={result.processed} advanced={result.advanced} failed={result.failed}",
            },
        )
        return result
