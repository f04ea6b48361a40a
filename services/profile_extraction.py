from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from models.profile import ProfileExtraction, WorkExperience


def _first(entry: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        # Some payloads nest dates as {"year": 2020, "month": 3}
        year = value.get("year")
        if not year:
            return None
        try:
            year = int(year)
        except (TypeError, ValueError):
            return None
        try:
            month = int(value.get("month") or 1)
        except (TypeError, ValueError):
            return f"{year:04d}"
        return f"{year:04d}-{month:02d}"
    text = str(value).strip()
    return text or None


def _experiences(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    profile = payload.get("linkedin_profile") if isinstance(payload.get("linkedin_profile"), dict) else {}
    for candidate in (payload.get("work_experience"), profile.get("experience"), payload.get("experience")):
        if isinstance(candidate, list) and candidate:
            return [e for e in candidate if isinstance(e, dict)]
    return []


def _phone(payload: Dict[str, Any]) -> Optional[str]:
    numbers = payload.get("phone_numbers")
    if isinstance(numbers, list) and numbers:
        first = numbers[0]
        if isinstance(first, dict):
            first = first.get("number") or first.get("phone")
        if first:
            return str(first)
    if payload.get("phone"):
        return str(payload["phone"])
    contact = payload.get("contact_info")
    if isinstance(contact, dict) and contact.get("phone"):
        return str(contact["phone"])
    return None


def extract_profile(payload: Optional[Dict[str, Any]]) -> ProfileExtraction:
    """Normalize an enrichment payload into work history, current job and phone.

    The current job is the first entry without an end date; when every entry
    has one, the first (most recent) entry is used.
    """
    if not payload:
        return ProfileExtraction()

    history: List[WorkExperience] = []
    for exp in _experiences(payload):
        end_date = _as_text(_first(exp, "end", "endDate", "end_date"))
        company_id = _first(exp, "company_id", "companyId")
        history.append(
            WorkExperience(
                company_name=str(_first(exp, "company", "companyName", "company_name") or "Unknown"),
                position=str(_first(exp, "position", "title", "job_title") or "Unknown"),
                start_date=_as_text(_first(exp, "start", "startDate", "start_date")),
                end_date=end_date,
                is_current=end_date is None,
                company_linkedin_id=str(company_id) if company_id is not None else None,
            )
        )

    current = next((w for w in history if w.is_current), history[0] if history else None)
    return ProfileExtraction(
        work_history=history,
        current_company=current.company_name if current else None,
        current_position=current.position if current else None,
        current_company_linkedin_id=current.company_linkedin_id if current else None,
        phone=_phone(payload),
    )


def profile_identifier(author_profile_id: Optional[str], author_profile_url: Optional[str]) -> Optional[str]:
    """Identifier the enrichment API accepts: the profile id, else the /in/<slug> of the URL."""
    if author_profile_id and author_profile_id.strip():
        return author_profile_id.strip()
    if not author_profile_url:
        return None
    path = urlparse(author_profile_url).path or ""
    parts = [p for p in path.split("/") if p]
    if len(parts) >= 2 and parts[0] == "in":
        return unquote(parts[1]).strip() or None
    return None
