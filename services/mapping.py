from __future__ import annotations

from typing import Any, Dict, List, Optional


# Scraper export key -> posts_raw column
_FIELD_ALIASES: Dict[str, tuple] = {
    "urn": ("urn",),
    "url": ("url", "postUrl"),
    "text": ("text",),
    "title": ("title",),
    "posted_at_iso": ("posted_at_iso", "postedAtIso", "postedAtISO"),
    "posted_at_timestamp": ("posted_at_timestamp", "postedAtTimestamp"),
    "author_type": ("author_type", "authorType"),
    "author_profile_url": ("author_profile_url", "authorProfileUrl"),
    "author_profile_id": ("author_profile_id", "authorProfileId"),
    "author_name": ("author_name", "authorName"),
    "author_headline": ("author_headline", "authorHeadline"),
    "is_repost": ("is_repost", "isRepost"),
}


def _first(item: Dict[str, Any], keys: tuple) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_timestamp(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def map_scraped_post(item: Dict[str, Any]) -> Dict[str, Any]:
    """Map one scraper export item (camelCase or snake_case) to the raw post shape."""
    mapped: Dict[str, Any] = {field: _first(item, keys) for field, keys in _FIELD_ALIASES.items()}
    mapped["posted_at_timestamp"] = _parse_timestamp(mapped.get("posted_at_timestamp"))
    repost = mapped.get("is_repost")
    if isinstance(repost, str):
        repost = repost.strip().lower() in ("1", "true", "yes")
    mapped["is_repost"] = bool(repost)
    # Scraper exports sometimes nest the author
    author = item.get("author")
    if isinstance(author, dict):
        mapped["author_name"] = mapped["author_name"] or author.get("name")
        mapped["author_profile_id"] = mapped["author_profile_id"] or author.get("id") or author.get("profileId")
        mapped["author_profile_url"] = mapped["author_profile_url"] or author.get("url") or author.get("profileUrl")
        mapped["author_headline"] = mapped["author_headline"] or author.get("headline")
    mapped["raw_data"] = item
    return mapped


def map_scraped_posts(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [map_scraped_post(i) for i in items if isinstance(i, dict)]
