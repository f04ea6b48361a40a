from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class EnrichmentAccount(BaseModel):
    """Rotating credential for the enrichment oracle; shared, never locked."""

    id: int
    account_id: str
    label: Optional[str] = None
    is_active: bool = True
    usage_count: int = 0
    last_used_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
