from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class RawPost(BaseModel):
    """Scraped post as delivered by the scraper export; transient."""

    id: Optional[int] = None
    dataset_id: str
    urn: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None
    title: Optional[str] = None
    posted_at_iso: Optional[str] = None
    posted_at_timestamp: Optional[int] = None
    author_type: Optional[str] = None
    author_profile_url: Optional[str] = None
    author_profile_id: Optional[str] = None
    author_name: Optional[str] = None
    author_headline: Optional[str] = None
    is_repost: bool = False
    raw_data: Dict[str, Any] = Field(default_factory=dict)
    processed: bool = False

    model_config = ConfigDict(extra="ignore")

    @property
    def dedupe_key(self) -> Optional[str]:
        """Unique source identifier: URL when present, URN otherwise."""
        url = (self.url or "").strip()
        if url:
            return url
        urn = (self.urn or "").strip()
        return urn or None
