from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class Client(BaseModel):
    """Known client company used for lead-client matching."""

    id: int
    company_name: str
    company_linkedin_id: Optional[str] = None
    tracking_enabled: bool = True

    model_config = ConfigDict(extra="ignore")
