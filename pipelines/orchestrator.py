from __future__ import annotations

import logging
import os
import sqlite3
import time
import uuid
from typing import Callable, Dict, List, Optional

from config.settings import Settings, get_settings
from db.repos.accounts_repo import AccountsRepo
from db.repos.posts_repo import PostsRepo
from db.repos.raw_posts_repo import RawPostsRepo
from models.post_status import PostStatus, STAGES
from pipelines.bottlenecks import BottleneckSnapshot, compute_snapshot
from pipelines.runner import Pipeline, RunContext, Step
from pipelines.steps import CategoryGate, CreateLeads, EnrichProfiles, FilterPosts, LocationGate, RecruitmentGate
from ports.oracles import ClassificationOraclePort, EnrichmentOraclePort
from ports.repos import AccountPoolPort

logger = logging.getLogger(__name__)

STAGE_ORDER: List[str] = ["filter", "gate1", "gate2", "gate3", "enrichment", "lead_creation"]
# Short breather for the classification oracle between gates
PAUSE_AFTER = ("gate1", "gate2")


def ensure_run_id() -> str:
    run_id = os.getenv("RUN_ID")
    if not run_id:
        run_id = uuid.uuid4().hex
        os.environ["RUN_ID"] = run_id
    return run_id


class Orchestrator:
    """Drives the stage chain and answers status / bottleneck queries.

    Oracles and the account pool are built lazily so status-only commands
    need no API credentials.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Optional[Settings] = None,
        *,
        classifier: Optional[ClassificationOraclePort] = None,
        enricher: Optional[EnrichmentOraclePort] = None,
        account_pool: Optional[AccountPoolPort] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.conn = conn
        self.settings = settings or get_settings()
        self._classifier = classifier
        self._enricher = enricher
        self._account_pool = account_pool
        self._sleep = sleep

    # --- Collaborators ---
    @property
    def classifier(self) -> ClassificationOraclePort:
        if self._classifier is None:
            from services.classifier import OpenAIClassifier
            self._classifier = OpenAIClassifier()
        return self._classifier

    @property
    def enricher(self) -> EnrichmentOraclePort:
        if self._enricher is None:
            from services.unipile_client import UnipileClient
            self._enricher = UnipileClient(self.settings)
        return self._enricher

    @property
    def account_pool(self) -> AccountPoolPort:
        if self._account_pool is None:
            from services.account_pool import AccountPool
            self._account_pool = AccountPool(AccountsRepo(self.conn), self.settings.account_selection)
        return self._account_pool

    def build_stage(self, name: str) -> Step:
        if name == "filter":
            return FilterPosts(self.conn, self.settings)
        if name == "gate1":
            return RecruitmentGate(self.conn, self.classifier, self.settings, sleep=self._sleep)
        if name == "gate2":
            return LocationGate(self.conn, self.classifier, self.settings, sleep=self._sleep)
        if name == "gate3":
            return CategoryGate(self.conn, self.classifier, self.settings, sleep=self._sleep)
        if name == "enrichment":
            return EnrichProfiles(self.conn, self.enricher, self.account_pool, self.settings)
        if name == "lead_creation":
            return CreateLeads(self.conn, self.settings)
        raise ValueError(f"Unknown stage: {name}")

    def pipeline(self, start: str = "filter", chain: bool = True) -> Pipeline:
        names = STAGE_ORDER[STAGE_ORDER.index(start):] if chain else [start]
        return Pipeline(
            [self.build_stage(n) for n in names],
            pause_after=PAUSE_AFTER,
            pause_seconds=self.settings.chain_pause_seconds,
            sleep=self._sleep,
        )

    # --- Actions ---
    def start(self, dataset_id: str, filter_batch: Optional[int] = None) -> RunContext:
        """Full chain for one dataset: filter -> gates -> enrichment -> leads."""
        run_id = ensure_run_id()
        ctx = RunContext(dataset_id=dataset_id, batch_size=filter_batch or self.settings.filter_batch_size)
        ctx.meta["run_id"] = run_id
        ctx.meta["action"] = "start"
        logger.info("Chain start", extra={"step": "orchestrator", "dataset_id": dataset_id, "run_id": run_id})
        return self.pipeline("filter").run(ctx)

    def run_stage(self, name: str, dataset_id: Optional[str], batch_size: Optional[int] = None, chain: bool = False) -> RunContext:
        run_id = ensure_run_id()
        if name not in STAGE_ORDER:
            raise ValueError(f"Unknown stage: {name}")
        pipeline = self.pipeline(name, chain=chain)
        ctx = RunContext(dataset_id=dataset_id, batch_size=batch_size or pipeline.steps[0].default_batch_size)
        ctx.meta["run_id"] = run_id
        ctx.meta["action"] = f"stage:{name}"
        return pipeline.run(ctx)

    def continue_(self, dataset_id: Optional[str]) -> RunContext:
        """Invoke, once and in order, every stage that has a backlog."""
        run_id = ensure_run_id()
        ctx = RunContext(dataset_id=dataset_id)
        ctx.meta["run_id"] = run_id
        ctx.meta["action"] = "continue"
        for name in STAGE_ORDER:
            if not self._has_backlog(name, dataset_id):
                continue
            sub = self.run_stage(name, dataset_id)
            ctx.results.extend(sub.results)
        return ctx

    def _has_backlog(self, name: str, dataset_id: Optional[str]) -> bool:
        if name == "filter":
            return bool(dataset_id) and RawPostsRepo(self.conn).count_unprocessed(dataset_id) > 0
        counts = PostsRepo(self.conn).count_by_status(dataset_id)
        return counts.get(f"queued_{name}", 0) > 0

    def status(self, dataset_id: Optional[str] = None) -> Dict[str, object]:
        counts = PostsRepo(self.conn).count_by_status(dataset_id)
        raw_pending = RawPostsRepo(self.conn).count_unprocessed(dataset_id)
        next_steps: List[str] = []
        if raw_pending:
            next_steps.append(f"filter: {raw_pending} raw posts to process")
        for stage in STAGES:
            queued = counts.get(stage.queued.value, 0)
            if queued:
                next_steps.append(f"{stage.value}: {queued} posts queued")
        in_flight = sum(counts.get(s.processing.value, 0) for s in STAGES)
        return {
            "dataset_id": dataset_id,
            "raw_unprocessed": raw_pending,
            "counts": dict(sorted(counts.items())),
            "completed": counts.get(PostStatus.COMPLETED.value, 0),
            "in_flight": in_flight,
            "next_steps": next_steps,
            "pipeline_complete": not next_steps and in_flight == 0,
        }

    def bottlenecks(self, dataset_id: Optional[str] = None) -> BottleneckSnapshot:
        return compute_snapshot(self.conn, dataset_id, self.settings)
