from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config.settings import Settings, get_settings
from db.repos.clients_repo import ClientsRepo
from db.repos.leads_repo import LeadsRepo
from db.repos.posts_repo import PostsRepo
from models.lead_record import HISTORY_SLOTS, LeadRecord
from models.post_record import PostRecord
from models.post_status import PostStatus, Stage
from models.profile import WorkExperience
from pipelines.runner import RunContext, StageResult
from services.client_matching import ClientDirectory, duration_months
from services.domain_utils import normalize_linkedin_profile_url
from services.profile_extraction import extract_profile
from utils.clock import now_iso

logger = logging.getLogger(__name__)


def split_name(post: PostRecord) -> Tuple[Optional[str], Optional[str]]:
    """First/last name: scraper-provided parts first, else split the display name."""
    raw = post.raw_data or {}
    first = raw.get("author_first_name") or raw.get("authorFirstName")
    last = raw.get("author_last_name") or raw.get("authorLastName")
    if first and last:
        return str(first).strip(), str(last).strip()
    parts = (post.author_name or "").split()
    if len(parts) >= 2:
        return parts[0], " ".join(parts[1:])
    return None, None


def _post_date(post: PostRecord) -> Optional[str]:
    if post.posted_at_timestamp:
        ts = float(post.posted_at_timestamp)
        # Scraper timestamps are in milliseconds
        if ts > 1e11:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return post.posted_at_iso


def history_slots(history: List[WorkExperience]) -> Dict[str, Any]:
    """Fixed-width denormalization of the first HISTORY_SLOTS employers."""
    fields: Dict[str, Any] = {}
    for i in range(HISTORY_SLOTS):
        idx = i + 1
        exp = history[i] if i < len(history) else None
        fields[f"company_{idx}_name"] = exp.company_name if exp else None
        fields[f"company_{idx}_position"] = exp.position if exp else None
        fields[f"company_{idx}_start_date"] = exp.start_date if exp else None
        fields[f"company_{idx}_end_date"] = exp.end_date if exp else None
        fields[f"company_{idx}_is_current"] = bool(exp.is_current) if exp else False
        fields[f"company_{idx}_linkedin_id"] = exp.company_linkedin_id if exp else None
        fields[f"company_{idx}_duration_months"] = duration_months(exp.start_date, exp.end_date) if exp else None
    return fields


def build_lead(post: PostRecord, clients: ClientDirectory) -> LeadRecord:
    extraction = extract_profile(post.enrichment_payload)
    company_name = extraction.current_company or post.enrichment_company or "Unknown"
    company_position = extraction.current_position or post.enrichment_position
    company_id = extraction.current_company_linkedin_id or post.enrichment_company_id
    match = clients.match(company_name, company_id)
    history = clients.analyze_history(extraction.work_history)
    first_name, last_name = split_name(post)
    return LeadRecord(
        author_profile_id=post.author_profile_id,
        author_name=post.author_name or "Unknown",
        first_name=first_name,
        last_name=last_name,
        author_headline=post.author_headline,
        author_profile_url=normalize_linkedin_profile_url(post.author_profile_url) or post.author_profile_url,
        dataset_id=post.dataset_id,
        latest_post_urn=post.urn,
        latest_post_url=post.url,
        latest_post_date=_post_date(post),
        text=post.text or "Content unavailable",
        title=post.title,
        posted_at_iso=post.posted_at_iso,
        posted_at_timestamp=post.posted_at_timestamp,
        gate2_location=post.gate2_location,
        gate3_category=post.gate3_category,
        gate3_selected_roles=post.gate3_selected_roles,
        gate3_justification=post.gate3_justification,
        company_name=company_name,
        company_position=company_position,
        company_linkedin_id=company_id,
        phone_number=extraction.phone,
        work_history=history_slots(extraction.work_history),
        is_client_lead=match.is_client,
        matched_client_id=match.client_id,
        matched_client_name=match.client_name,
        has_previous_client_company=history.has_previous_client_company,
        previous_client_companies=history.previous_client_companies,
        client_history_alert=history.alert,
        processing_status="completed",
        created_at=now_iso(),
    )


class CreateLeads:
    """Materialize one lead per author and close the originating posts.

    All new leads and every completed-post update are written in a single
    transaction; if that fails nothing is applied and the posts stay in
    processing_lead_creation until reset.
    """

    name = "lead_creation"
    stage = Stage.LEAD_CREATION

    def __init__(self, conn: sqlite3.Connection, settings: Optional[Settings] = None):
        self.conn = conn
        self.settings = settings or get_settings()
        self.default_batch_size = self.settings.lead_batch_size

    def run(self, ctx: RunContext) -> StageResult:
        posts_repo = PostsRepo(self.conn)
        leads_repo = LeadsRepo(self.conn)
        result = StageResult(stage=self.name, batch_size=ctx.batch_size)
        posts = posts_repo.claim(self.stage.queued, self.stage.processing, ctx.dataset_id, ctx.batch_size)
        logger.info("Lead batch start", extra={"step": self.name, "dataset_id": ctx.dataset_id, "status": f"claimed={len(posts)}"})
        if not posts:
            return result

        clients = ClientDirectory(ClientsRepo(self.conn).list_tracked())
        existing = leads_repo.ids_by_profile([p.author_profile_id for p in posts])

        built: Dict[str, LeadRecord] = {}
        links: List[Tuple[PostRecord, str]] = []
        # Newest post of an author builds the lead
        ordered = sorted(posts, key=lambda p: (-(p.posted_at_timestamp or 0), p.id))
        for post in ordered:
            result.processed += 1
            pid = post.author_profile_id
            if pid in existing or pid in built:
                links.append((post, pid))
                continue
            try:
                built[pid] = build_lead(post, clients)
            except Exception as e:
                logger.warning("Lead build failed", extra={"step": self.name, "post_id": post.id, "error": str(e)})
                if posts_repo.mark_error(post.id, self.stage.processing, self.stage.error, f"{type(e).__name__}: {e}"):
                    result.failed += 1
                else:
                    result.lost += 1
                continue
            links.append((post, pid))

        try:
            new_ids = leads_repo.insert_many(list(built.values()), commit=False)
            lead_ids = {**existing, **new_ids}
            for post, pid in links:
                if posts_repo.transition(
                    post.id, self.stage.processing, PostStatus.COMPLETED, {"lead_id": lead_ids[pid]}, commit=False
                ):
                    result.advanced += 1
                else:
                    result.lost += 1
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        result.details = {"leads_created": len(built), "linked_to_existing": len(links) - len(built)}
        logger.info(
            "Lead batch done",
            extra={
                "step": self.name,
                "dataset_id": ctx.dataset_id,
                "status": f"leads={len(built)} completed={result.advanced} failed={result.failed}",
            },
        )
        return result
