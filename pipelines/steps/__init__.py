# Namespace for pipeline stages
from .filter_posts import FilterPosts  # noqa: F401
from .gates import RecruitmentGate, LocationGate, CategoryGate  # noqa: F401
from .enrich_profiles import EnrichProfiles  # noqa: F401
from .create_leads import CreateLeads  # noqa: F401
