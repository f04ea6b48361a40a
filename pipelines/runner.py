from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from utils.logging_setup import init_logging

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    stage: str
    batch_size: int = 0
    processed: int = 0
    advanced: int = 0
    rejected: int = 0
    failed: int = 0
    lost: int = 0
    skipped: bool = False
    next_triggered: bool = False
    error: Optional[str] = None
    duration_ms: int = 0
    details: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class RunContext:
    dataset_id: Optional[str] = None
    batch_size: int = 0
    results: List[StageResult] = field(default_factory=list)
    meta: dict = field(default_factory=dict)

    @property
    def failed_stages(self) -> List[str]:
        return [r.stage for r in self.results if r.error]


class Step(Protocol):
    name: str
    default_batch_size: int

    def run(self, ctx: RunContext) -> StageResult:
        ...


class Pipeline:
    """Ordered stage descriptor; each stage feeds the next with a capped batch.

    A stage only triggers its successor when it advanced at least one record;
    the successor's batch is min(advanced, successor default batch size).
    Stage exceptions are recorded in the run context and halt the chain.
    """

    def __init__(
        self,
        steps: Sequence[Step],
        *,
        pause_after: Sequence[str] = (),
        pause_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.steps = list(steps)
        self.pause_after = set(pause_after)
        self.pause_seconds = pause_seconds
        self._sleep = sleep

    def run(self, ctx: RunContext) -> RunContext:
        # Make logging idempotent for any direct runner use
        init_logging()
        for pos, step in enumerate(self.steps):
            nxt = self.steps[pos + 1] if pos + 1 < len(self.steps) else None
            if ctx.batch_size <= 0:
                ctx.results.append(StageResult(stage=step.name, skipped=True))
                continue
            t0 = time.time()
            try:
                result = step.run(ctx)
            except Exception as e:
                logger.exception(
                    "Stage failed",
                    extra={"step": step.name, "dataset_id": ctx.dataset_id, "error": str(e)},
                )
                result = StageResult(stage=step.name, batch_size=ctx.batch_size, error=f"{type(e).__name__}: {e}")
                result.duration_ms = int((time.time() - t0) * 1000)
                ctx.results.append(result)
                ctx.batch_size = 0
                continue
            result.duration_ms = int((time.time() - t0) * 1000)
            if nxt is not None and result.advanced > 0:
                result.next_triggered = True
                ctx.batch_size = min(result.advanced, nxt.default_batch_size)
                if step.name in self.pause_after and self.pause_seconds > 0:
                    self._sleep(self.pause_seconds)
            else:
                ctx.batch_size = 0
            ctx.results.append(result)
        return ctx
