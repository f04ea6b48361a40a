from .client import Client
from .enrichment_account import EnrichmentAccount
from .lead_record import LeadRecord
from .post_record import PostRecord
from .post_status import IllegalTransitionError, PostStatus, Stage
from .profile import ProfileExtraction, WorkExperience
from .raw_post import RawPost
from .verdicts import Gate1Verdict, Gate2Verdict, Gate3Verdict

__all__ = [
    "Client",
    "EnrichmentAccount",
    "LeadRecord",
    "PostRecord",
    "IllegalTransitionError",
    "PostStatus",
    "Stage",
    "ProfileExtraction",
    "WorkExperience",
    "RawPost",
    "Gate1Verdict",
    "Gate2Verdict",
    "Gate3Verdict",
]
