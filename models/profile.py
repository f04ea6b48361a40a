from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkExperience(BaseModel):
    company_name: str = "Unknown"
    position: str = "Unknown"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_current: bool = False
    company_linkedin_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ProfileExtraction(BaseModel):
    """Normalized view of an enrichment payload."""

    work_history: List[WorkExperience] = Field(default_factory=list)
    current_company: Optional[str] = None
    current_position: Optional[str] = None
    current_company_linkedin_id: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
