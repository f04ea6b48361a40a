from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional


class IllegalTransitionError(RuntimeError):
    """Raised when a post status change is not an edge of the state machine."""

    def __init__(self, current: "PostStatus | str | None", target: "PostStatus | str") -> None:
        super().__init__(f"Illegal status transition: {current} -> {target}")
        self.current = current
        self.target = target


class PostStatus(str, Enum):
    QUEUED_GATE1 = "queued_gate1"
    PROCESSING_GATE1 = "processing_gate1"
    REJECTED_GATE1 = "rejected_gate1"
    ERROR_GATE1 = "error_gate1"

    QUEUED_GATE2 = "queued_gate2"
    PROCESSING_GATE2 = "processing_gate2"
    REJECTED_GATE2 = "rejected_gate2"
    ERROR_GATE2 = "error_gate2"

    QUEUED_GATE3 = "queued_gate3"
    PROCESSING_GATE3 = "processing_gate3"
    REJECTED_GATE3 = "rejected_gate3"
    ERROR_GATE3 = "error_gate3"

    QUEUED_ENRICHMENT = "queued_enrichment"
    PROCESSING_ENRICHMENT = "processing_enrichment"
    ERROR_ENRICHMENT = "error_enrichment"

    QUEUED_LEAD_CREATION = "queued_lead_creation"
    PROCESSING_LEAD_CREATION = "processing_lead_creation"
    ERROR_LEAD_CREATION = "error_lead_creation"

    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_queued(self) -> bool:
        return self.value.startswith("queued_")

    @property
    def is_processing(self) -> bool:
        return self.value.startswith("processing_")

    @property
    def is_rejected(self) -> bool:
        return self.value.startswith("rejected_")

    @property
    def is_error(self) -> bool:
        return self.value.startswith("error_")

    @property
    def is_terminal(self) -> bool:
        """Rejected, completed and error states; no stage acts on them."""
        return self.is_rejected or self.is_error or self is PostStatus.COMPLETED


S = PostStatus


class Stage(str, Enum):
    """Pipeline positions that own a queue."""

    GATE1 = "gate1"
    GATE2 = "gate2"
    GATE3 = "gate3"
    ENRICHMENT = "enrichment"
    LEAD_CREATION = "lead_creation"

    def __str__(self) -> str:
        return self.value

    @property
    def queued(self) -> PostStatus:
        return PostStatus(f"queued_{self.value}")

    @property
    def processing(self) -> PostStatus:
        return PostStatus(f"processing_{self.value}")

    @property
    def error(self) -> PostStatus:
        return PostStatus(f"error_{self.value}")

    @property
    def rejected(self) -> Optional[PostStatus]:
        try:
            return PostStatus(f"rejected_{self.value}")
        except ValueError:
            return None

    @property
    def index(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = [Stage.GATE1, Stage.GATE2, Stage.GATE3, Stage.ENRICHMENT, Stage.LEAD_CREATION]
TERMINAL_INDEX = len(_STAGE_ORDER)


def _forward_edges() -> Dict[PostStatus, FrozenSet[PostStatus]]:
    edges: Dict[PostStatus, FrozenSet[PostStatus]] = {}
    for pos, stage in enumerate(_STAGE_ORDER):
        edges[stage.queued] = frozenset({stage.processing})
        if stage is Stage.LEAD_CREATION:
            outcomes = {S.COMPLETED, stage.error}
        else:
            outcomes = {_STAGE_ORDER[pos + 1].queued, stage.error}
            if stage.rejected is not None:
                outcomes.add(stage.rejected)
        # Reset edge for stuck claims
        outcomes.add(stage.queued)
        edges[stage.processing] = frozenset(outcomes)
        # Operator retry / reconciliation
        edges[stage.error] = frozenset({stage.queued})
    return edges


TRANSITIONS: Dict[PostStatus, FrozenSet[PostStatus]] = _forward_edges()


def can_transition(current: PostStatus | str, target: PostStatus | str) -> bool:
    try:
        cur = PostStatus(current)
        tgt = PostStatus(target)
    except ValueError:
        return False
    return tgt in TRANSITIONS.get(cur, frozenset())


def assert_transition(current: PostStatus | str | None, target: PostStatus | str) -> None:
    if current is None:
        # Entry into the pipeline happens only through the ingestion filter
        if PostStatus(target) is not S.QUEUED_GATE1:
            raise IllegalTransitionError(current, target)
        return
    if not can_transition(current, target):
        raise IllegalTransitionError(current, target)


def stage_of(status: PostStatus | str) -> Optional[Stage]:
    """Stage owning a status, or None for completed."""
    value = PostStatus(status).value
    if value == S.COMPLETED.value:
        return None
    _, _, name = value.partition("_")
    return Stage(name)


def stage_index(status: PostStatus | str) -> int:
    """gate1=0 ... lead_creation=4; terminal states (rejected, error, completed) = 5."""
    st = PostStatus(status)
    if st.is_terminal:
        return TERMINAL_INDEX
    stage = stage_of(st)
    assert stage is not None
    return stage.index


def owning_queue(status: PostStatus | str) -> Optional[PostStatus]:
    """Queued state a retry resets this status to; None for rejected/completed."""
    st = PostStatus(status)
    if st.is_rejected or st is S.COMPLETED:
        return None
    stage = stage_of(st)
    return stage.queued if stage else None


ERROR_STATUSES = [s for s in PostStatus if s.is_error]
PROCESSING_STATUSES = [s for s in PostStatus if s.is_processing]
QUEUED_STATUSES = [s for s in PostStatus if s.is_queued]
STAGES = list(_STAGE_ORDER)
