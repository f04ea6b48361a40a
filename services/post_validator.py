from __future__ import annotations

from typing import List

from models.raw_post import RawPost


class PostValidator:
    """Admission rules for scraped posts entering the pipeline."""

    def __init__(self, min_text_length: int = 50):
        self.min_text_length = min_text_length

    def validate(self, post: RawPost) -> List[str]:
        """Return the reasons a post is dropped; empty when it qualifies."""
        errors: List[str] = []
        if post.is_repost:
            errors.append("repost")
        text = (post.text or "").strip()
        if not text:
            errors.append("Missing required field: text")
        elif len(text) < self.min_text_length:
            errors.append(f"Text shorter than {self.min_text_length} characters")
        if not (post.author_name or "").strip():
            errors.append("Missing required field: author_name")
        if not (post.author_profile_id or "").strip():
            errors.append("Missing required field: author_profile_id")
        if not post.dedupe_key:
            errors.append("Missing both url and urn")
        return errors
