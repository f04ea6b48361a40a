from __future__ import annotations

from models.post_record import PostRecord
from models.post_status import Stage
from models.verdicts import Gate1Verdict, Gate2Verdict, Gate3Verdict, is_uncategorized
from pipelines.steps.gate_worker import GateWorker, Outcome
from services.classifier import OracleError


class RecruitmentGate(GateWorker):
    """Gate 1: is the author recruiting for their own company."""

    stage = Stage.GATE1
    name = "gate1"

    def classify(self, post: PostRecord) -> Gate1Verdict:
        return self.oracle.gate1(post)

    def route(self, post: PostRecord, verdict: Gate1Verdict) -> Outcome:
        passed = self._pass_fail(verdict.verdict)
        fields = {
            "gate1_verdict": "yes" if passed else "no",
            "gate1_roles": verdict.roles if passed else "",
            "gate1_response_json": verdict.model_dump(),
        }
        return (self.next_queue if passed else self.stage.rejected), fields


class LocationGate(GateWorker):
    """Gate 2: French-language post in the target zone."""

    stage = Stage.GATE2
    name = "gate2"

    def classify(self, post: PostRecord) -> Gate2Verdict:
        return self.oracle.gate2(post)

    def route(self, post: PostRecord, verdict: Gate2Verdict) -> Outcome:
        passed = self._pass_fail(verdict.verdict)
        fields = {
            "gate2_verdict": "yes" if passed else "no",
            "gate2_language": verdict.language,
            "gate2_location": verdict.location,
            "gate2_reason": verdict.reason,
            "gate2_response_json": verdict.model_dump(),
        }
        return (self.next_queue if passed else self.stage.rejected), fields


class CategoryGate(GateWorker):
    """Gate 3: job category and normalized role titles; uncategorized posts stop here."""

    stage = Stage.GATE3
    name = "gate3"

    def classify(self, post: PostRecord) -> Gate3Verdict:
        return self.oracle.gate3(post)

    def route(self, post: PostRecord, verdict: Gate3Verdict) -> Outcome:
        category = (verdict.category or "").strip()
        if not category and self.settings.strict_verdicts:
            raise OracleError("Missing category in gate3 verdict")
        fields = {
            "gate3_category": category or None,
            "gate3_selected_roles_json": verdict.selected_roles,
            "gate3_justification": verdict.justification,
            "gate3_response_json": verdict.model_dump(),
        }
        if is_uncategorized(category):
            return self.stage.rejected, fields
        return self.next_queue, fields
