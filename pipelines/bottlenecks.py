from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from config.settings import Settings, get_settings
from db.repos.leads_repo import LeadsRepo
from db.repos.posts_repo import PostsRepo
from db.repos.raw_posts_repo import RawPostsRepo
from models.post_status import PROCESSING_STATUSES, PostStatus, STAGES
from utils.clock import to_iso, utc_now

# Queue depth above which a position is flagged
THRESHOLDS: Dict[str, int] = {
    "filter": 100,
    "gate1": 50,
    "gate2": 30,
    "gate3": 30,
    "enrichment": 20,
    "lead_creation": 50,
}

_ADVICE: Dict[str, str] = {
    "filter": "Raw post backlog exceeds {threshold} ({count}): run the filter or raise FILTER_BATCH_SIZE",
    "gate1": "Gate 1 backlog exceeds {threshold} ({count}): increase GATE_BATCH_SIZE or run gate1 more often",
    "gate2": "Gate 2 backlog exceeds {threshold} ({count}): increase GATE_BATCH_SIZE or run gate2 more often",
    "gate3": "Gate 3 backlog exceeds {threshold} ({count}): increase GATE_BATCH_SIZE or run gate3 more often",
    "enrichment": "Enrichment backlog exceeds {threshold} ({count}): add enrichment accounts or run enrichment more often",
    "lead_creation": "Lead creation backlog exceeds {threshold} ({count}): run lead_creation or raise LEAD_BATCH_SIZE",
}


@dataclass
class Bottleneck:
    position: str
    count: int
    threshold: int
    severity: str


@dataclass
class BottleneckSnapshot:
    dataset_id: Optional[str]
    raw_unprocessed: int = 0
    queued: Dict[str, int] = field(default_factory=dict)
    processing: Dict[str, int] = field(default_factory=dict)
    errored: Dict[str, int] = field(default_factory=dict)
    rejected: Dict[str, int] = field(default_factory=dict)
    completed: int = 0
    leads: int = 0
    stuck: int = 0
    bottlenecks: List[Bottleneck] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def total_errored(self) -> int:
        return sum(self.errored.values())

    def as_dict(self) -> dict:
        data = asdict(self)
        data["total_errored"] = self.total_errored
        return data


def _severity(count: int, threshold: int) -> str:
    return "high" if count > 2 * threshold else "medium"


def compute_snapshot(conn: sqlite3.Connection, dataset_id: Optional[str] = None, settings: Optional[Settings] = None) -> BottleneckSnapshot:
    """Read-only count of posts per pipeline position plus recommendations."""
    settings = settings or get_settings()
    posts = PostsRepo(conn)
    counts = posts.count_by_status(dataset_id)
    snap = BottleneckSnapshot(dataset_id=dataset_id)
    snap.raw_unprocessed = RawPostsRepo(conn).count_unprocessed(dataset_id)
    snap.leads = LeadsRepo(conn).count(dataset_id)
    snap.completed = counts.get(PostStatus.COMPLETED.value, 0)
    for stage in STAGES:
        snap.queued[stage.value] = counts.get(stage.queued.value, 0)
        snap.processing[stage.value] = counts.get(stage.processing.value, 0)
        snap.errored[stage.value] = counts.get(stage.error.value, 0)
        if stage.rejected is not None:
            snap.rejected[stage.value] = counts.get(stage.rejected.value, 0)

    cutoff = to_iso(utc_now() - timedelta(minutes=settings.stuck_after_minutes))
    snap.stuck = posts.count_stale(PROCESSING_STATUSES, cutoff, dataset_id)

    depths = {"filter": snap.raw_unprocessed, **snap.queued}
    for position, threshold in THRESHOLDS.items():
        count = depths.get(position, 0)
        if count > threshold:
            snap.bottlenecks.append(Bottleneck(position, count, threshold, _severity(count, threshold)))
            snap.recommendations.append(_ADVICE[position].format(threshold=threshold, count=count))

    if snap.total_errored > 0:
        by_stage = ", ".join(f"{k}={v}" for k, v in snap.errored.items() if v)
        snap.recommendations.append(f"{snap.total_errored} posts in error ({by_stage}): run `retry` or `reconcile`")
    if snap.stuck > 0:
        snap.recommendations.append(
            f"{snap.stuck} posts stuck in processing for more than {settings.stuck_after_minutes} minutes: run `retry --stuck`"
        )
    return snap
