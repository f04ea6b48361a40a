from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


HISTORY_SLOTS = 5
HISTORY_FIELDS = ("name", "position", "start_date", "end_date", "is_current", "linkedin_id", "duration_months")


def history_columns() -> List[str]:
    """Fixed-width work history columns: company_1_name ... company_5_duration_months."""
    return [f"company_{i}_{field}" for i in range(1, HISTORY_SLOTS + 1) for field in HISTORY_FIELDS]


class LeadRecord(BaseModel):
    """Materialized lead: one per author profile id, immutable once written."""

    id: Optional[int] = None
    author_profile_id: str
    author_name: str = "Unknown"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    author_headline: Optional[str] = None
    author_profile_url: Optional[str] = None
    dataset_id: Optional[str] = None

    latest_post_urn: Optional[str] = None
    latest_post_url: Optional[str] = None
    latest_post_date: Optional[str] = None
    text: str = "Content unavailable"
    title: Optional[str] = None
    posted_at_iso: Optional[str] = None
    posted_at_timestamp: Optional[int] = None

    gate2_location: Optional[str] = None
    gate3_category: Optional[str] = None
    gate3_selected_roles: List[str] = Field(default_factory=list)
    gate3_justification: Optional[str] = None

    company_name: str = "Unknown"
    company_position: Optional[str] = None
    company_linkedin_id: Optional[str] = None
    phone_number: Optional[str] = None

    # company_{1..5}_* slots, see history_columns()
    work_history: Dict[str, Any] = Field(default_factory=dict)

    is_client_lead: bool = False
    matched_client_id: Optional[int] = None
    matched_client_name: Optional[str] = None
    has_previous_client_company: bool = False
    previous_client_companies: List[Dict[str, Any]] = Field(default_factory=list)
    client_history_alert: Optional[str] = None

    processing_status: str = "completed"
    created_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
