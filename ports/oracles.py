from __future__ import annotations

from typing import Any, Dict, Protocol

from models.post_record import PostRecord
from models.verdicts import Gate1Verdict, Gate2Verdict, Gate3Verdict


class ClassificationOraclePort(Protocol):
    """Black-box text classifier used by the three gates.

    Implementations raise on transport failure or on a response that is not a
    structured verdict; the gate records either as error_<gate>.
    """

    def gate1(self, post: PostRecord) -> Gate1Verdict:
        ...

    def gate2(self, post: PostRecord) -> Gate2Verdict:
        ...

    def gate3(self, post: PostRecord) -> Gate3Verdict:
        ...


class EnrichmentOraclePort(Protocol):
    def fetch_profile(self, profile_identifier: str, account_id: str) -> Dict[str, Any]:
        ...
