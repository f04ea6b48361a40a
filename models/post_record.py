from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.post_status import PostStatus


class PostRecord(BaseModel):
    """The pipeline's unit of work. Owned by whichever stage `status` names."""

    id: int
    dataset_id: str
    urn: Optional[str] = None
    url: str
    text: str
    title: Optional[str] = None
    posted_at_iso: Optional[str] = None
    posted_at_timestamp: Optional[int] = None
    author_type: Optional[str] = None
    author_profile_url: Optional[str] = None
    author_profile_id: str
    author_name: str
    author_headline: Optional[str] = None
    raw_data: Dict[str, Any] = Field(default_factory=dict)

    status: PostStatus

    gate1_verdict: Optional[str] = None
    gate1_roles: Optional[str] = None
    gate1_response: Optional[Dict[str, Any]] = None

    gate2_verdict: Optional[str] = None
    gate2_language: Optional[str] = None
    gate2_location: Optional[str] = None
    gate2_reason: Optional[str] = None
    gate2_response: Optional[Dict[str, Any]] = None

    gate3_category: Optional[str] = None
    gate3_selected_roles: List[str] = Field(default_factory=list)
    gate3_justification: Optional[str] = None
    gate3_response: Optional[Dict[str, Any]] = None

    enrichment_company: Optional[str] = None
    enrichment_position: Optional[str] = None
    enrichment_company_id: Optional[str] = None
    enrichment_payload: Optional[Dict[str, Any]] = None
    enrichment_account_id: Optional[str] = None
    enriched_at: Optional[str] = None

    lead_id: Optional[int] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    created_at: Optional[str] = None
    last_updated_at: Optional[str] = None
    last_retry_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
