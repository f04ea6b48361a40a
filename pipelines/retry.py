from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from config.settings import Settings, get_settings
from db.repos.posts_repo import PostsRepo
from models.post_status import ERROR_STATUSES, PROCESSING_STATUSES, PostStatus, owning_queue
from utils.clock import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass
class RetryResult:
    reset: int = 0
    skipped_max_retries: int = 0
    not_due: int = 0
    lost: int = 0
    post_ids: List[int] = field(default_factory=list)


def backoff_delay(retry_count: int, base_seconds: int, max_seconds: int) -> int:
    """Seconds to wait after the n-th failure: min(base * 2^(n-1), max)."""
    n = max(1, retry_count)
    return min(base_seconds * (2 ** (n - 1)), max_seconds)


def _reset(repo: PostsRepo, post_id: int, status: PostStatus, result: RetryResult) -> None:
    target = owning_queue(status)
    assert target is not None
    if repo.transition(post_id, status, target):
        result.reset += 1
        result.post_ids.append(post_id)
        logger.info("Post reset", extra={"step": "retry", "post_id": post_id, "status": f"{status.value}->{target.value}"})
    else:
        result.lost += 1


def retry_posts(
    conn: sqlite3.Connection,
    settings: Optional[Settings] = None,
    *,
    statuses: Optional[Sequence[str]] = None,
    post_ids: Optional[Sequence[int]] = None,
    older_than_minutes: Optional[int] = None,
    limit: Optional[int] = None,
    force: bool = False,
    include_stuck: bool = False,
    dataset_id: Optional[str] = None,
) -> RetryResult:
    """Operator retry: reset error_* (and stuck processing_*) posts to their queue.

    Error posts that used up RETRY_MAX_ATTEMPTS are skipped unless forced.
    Processing posts are only reset once older than the stuck threshold
    (or any age when forced).
    """
    settings = settings or get_settings()
    repo = PostsRepo(conn)
    limit = limit or settings.retry_limit
    result = RetryResult()

    wanted = [PostStatus(s) for s in statuses] if statuses else list(ERROR_STATUSES)
    for st in wanted:
        if not (st.is_error or st.is_processing):
            raise ValueError(f"Only error_* or processing_* posts can be retried, got {st.value}")
    error_statuses = [s for s in wanted if s.is_error]
    processing_statuses = [s for s in wanted if s.is_processing]
    if include_stuck:
        processing_statuses = list(dict.fromkeys(processing_statuses + PROCESSING_STATUSES))

    now = utc_now()
    if error_statuses:
        cutoff = to_iso(now - timedelta(minutes=older_than_minutes)) if older_than_minutes else None
        for post_id, status, retry_count, _ in repo.find_retry_candidates(
            error_statuses, post_ids=post_ids, updated_before=cutoff, dataset_id=dataset_id, limit=limit
        ):
            if retry_count >= settings.retry_max_attempts and not force:
                result.skipped_max_retries += 1
                continue
            _reset(repo, post_id, PostStatus(status), result)

    remaining = limit - result.reset - result.skipped_max_retries
    if processing_statuses and remaining > 0:
        minutes = older_than_minutes if older_than_minutes is not None else settings.stuck_after_minutes
        # force resets active claims too
        cutoff = None if force else to_iso(now - timedelta(minutes=minutes))
        for post_id, status, _, _ in repo.find_retry_candidates(
            processing_statuses, post_ids=post_ids, updated_before=cutoff, dataset_id=dataset_id, limit=remaining
        ):
            _reset(repo, post_id, PostStatus(status), result)

    logger.info(
        "Retry done",
        extra={"step": "retry", "dataset_id": dataset_id, "status": f"reset={result.reset} skipped={result.skipped_max_retries}"},
    )
    return result


def reconcile(
    conn: sqlite3.Connection,
    settings: Optional[Settings] = None,
    *,
    now: Optional[datetime] = None,
    dataset_id: Optional[str] = None,
) -> RetryResult:
    """Automatic retry with exponential backoff keyed by retry_count.

    An error post is reset once backoff_delay(retry_count) has elapsed since
    last_retry_at and it has fewer than RETRY_MAX_ATTEMPTS failures. Stuck
    processing posts are reset as well.
    """
    settings = settings or get_settings()
    repo = PostsRepo(conn)
    now = now or utc_now()
    result = RetryResult()

    # Reset rows leave the error set, so the offset only skips rows still backing off
    while result.reset < settings.retry_limit:
        page = repo.find_retry_candidates(
            ERROR_STATUSES,
            dataset_id=dataset_id,
            below_retry_count=settings.retry_max_attempts,
            limit=settings.retry_limit,
            offset=result.not_due,
        )
        for post_id, status, retry_count, last_retry_at in page:
            if result.reset >= settings.retry_limit:
                break
            last = parse_iso(last_retry_at)
            delay = backoff_delay(retry_count, settings.retry_base_seconds, settings.retry_max_seconds)
            if last is not None and last + timedelta(seconds=delay) > now:
                result.not_due += 1
                continue
            _reset(repo, post_id, PostStatus(status), result)
        if len(page) < settings.retry_limit:
            break

    cutoff = to_iso(now - timedelta(minutes=settings.stuck_after_minutes))
    for post_id, status, _, _ in repo.find_retry_candidates(
        PROCESSING_STATUSES, updated_before=cutoff, dataset_id=dataset_id, limit=settings.retry_limit
    ):
        _reset(repo, post_id, PostStatus(status), result)

    logger.info(
        "Reconcile pass done",
        extra={"step": "reconcile", "dataset_id": dataset_id, "status": f"reset={result.reset} not_due={result.not_due}"},
    )
    return result


def reconcile_loop(
    conn: sqlite3.Connection,
    settings: Optional[Settings] = None,
    *,
    interval_seconds: float = 60.0,
    iterations: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[RetryResult]:
    """Run reconcile() every interval; forever unless `iterations` is given."""
    results: List[RetryResult] = []
    count = 0
    while iterations is None or count < iterations:
        res = reconcile(conn, settings)
        # Unbounded loops keep no history
        if iterations is not None:
            results.append(res)
        count += 1
        if iterations is not None and count >= iterations:
            break
        sleep(interval_seconds)
    return results
