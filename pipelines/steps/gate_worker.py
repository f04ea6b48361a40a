from __future__ import annotations

import concurrent.futures as _fut
import logging
import sqlite3
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import Settings, get_settings
from db.repos.posts_repo import PostsRepo
from models.post_record import PostRecord
from models.post_status import PostStatus, Stage
from models.verdicts import normalize_verdict
from pipelines.runner import RunContext, StageResult
from ports.oracles import ClassificationOraclePort
from services.classifier import OracleError

logger = logging.getLogger(__name__)

Outcome = Tuple[PostStatus, Dict[str, Any]]


class GateWorker:
    """Shared shape of the three classification gates.

    Claims a batch, fans oracle calls out in windows of GATE_CONCURRENCY with
    a short pause between windows, and persists each window's results on the
    calling thread (the SQLite connection is not shared with workers).
    """

    stage: Stage
    name: str

    def __init__(
        self,
        conn: sqlite3.Connection,
        oracle: ClassificationOraclePort,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.conn = conn
        self.oracle = oracle
        self.settings = settings or get_settings()
        self.default_batch_size = self.settings.gate_batch_size
        self._sleep = sleep

    # Subclass hooks
    def classify(self, post: PostRecord) -> Any:
        raise NotImplementedError

    def route(self, post: PostRecord, verdict: Any) -> Outcome:
        raise NotImplementedError

    def _pass_fail(self, token: Any) -> bool:
        decision = normalize_verdict(token)
        if decision is None:
            if self.settings.strict_verdicts:
                raise OracleError(f"Unrecognized verdict token: {token!r}")
            return False
        return decision

    @property
    def next_queue(self) -> PostStatus:
        stages = list(Stage)
        return stages[self.stage.index + 1].queued

    def run(self, ctx: RunContext) -> StageResult:
        repo = PostsRepo(self.conn)
        result = StageResult(stage=self.name, batch_size=ctx.batch_size)
        posts = repo.claim(self.stage.queued, self.stage.processing, ctx.dataset_id, ctx.batch_size)
        logger.info("Gate batch start", extra={"step": self.name, "dataset_id": ctx.dataset_id, "status": f"claimed={len(posts)}"})
        if not posts:
            return result

        window = max(1, self.settings.gate_concurrency)
        pause = self.settings.gate_window_pause_ms / 1000.0
        with _fut.ThreadPoolExecutor(max_workers=window) as ex:
            for start in range(0, len(posts), window):
                chunk = posts[start:start + window]
                futures: List[Tuple[PostRecord, _fut.Future]] = [(p, ex.submit(self.classify, p)) for p in chunk]
                for post, fut in futures:
                    self._settle(repo, post, fut, result)
                if start + window < len(posts) and pause > 0:
                    self._sleep(pause)

        logger.info(
            "Gate batch done",
            extra={
                "step": self.name,
                "dataset_id": ctx.dataset_id,
                "status": f"processed={result.processed} advanced={result.advanced} rejected={result.rejected} failed={result.failed}",
            },
        )
        return result

    def _settle(self, repo: PostsRepo, post: PostRecord, fut: _fut.Future, result: StageResult) -> None:
        result.processed += 1
        try:
            target, fields = self.route(post, fut.result())
        except Exception as e:
            logger.warning("Gate call failed", extra={"step": self.name, "post_id": post.id, "error": str(e)})
            if repo.mark_error(post.id, self.stage.processing, self.stage.error, f"{type(e).__name__}: {e}"):
                result.failed += 1
            else:
                result.lost += 1
            return
        if not repo.transition(post.id, self.stage.processing, target, fields):
            result.lost += 1
            return
        if target is self.next_queue:
            result.advanced += 1
        else:
            result.rejected += 1
        logger.debug("Gate verdict", extra={"step": self.name, "post_id": post.id, "status": target.value})
