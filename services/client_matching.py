from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from models.client import Client
from models.profile import WorkExperience


@dataclass
class ClientMatch:
    is_client: bool = False
    client_id: Optional[int] = None
    client_name: Optional[str] = None


@dataclass
class ClientHistory:
    has_previous_client_company: bool = False
    previous_client_companies: List[Dict[str, Any]] = field(default_factory=list)
    alert: Optional[str] = None


def _norm(name: Optional[str]) -> str:
    return " ".join((name or "").split()).casefold()


class ClientDirectory:
    """Read-only lookup over the tracked clients, loaded once per batch."""

    def __init__(self, clients: Sequence[Client]):
        self.clients = list(clients)
        self._by_linkedin_id: Dict[str, Client] = {}
        self._by_name: Dict[str, Client] = {}
        for c in self.clients:
            if c.company_linkedin_id:
                self._by_linkedin_id.setdefault(str(c.company_linkedin_id), c)
            key = _norm(c.company_name)
            if key:
                self._by_name.setdefault(key, c)

    def find(self, company_name: Optional[str], company_linkedin_id: Optional[str]) -> Optional[Client]:
        if company_linkedin_id and str(company_linkedin_id) in self._by_linkedin_id:
            return self._by_linkedin_id[str(company_linkedin_id)]
        key = _norm(company_name)
        if key and key != "unknown":
            return self._by_name.get(key)
        return None

    def match(self, company_name: Optional[str], company_linkedin_id: Optional[str]) -> ClientMatch:
        client = self.find(company_name, company_linkedin_id)
        if client is None:
            return ClientMatch()
        return ClientMatch(is_client=True, client_id=client.id, client_name=client.company_name)

    def analyze_history(self, history: Sequence[WorkExperience]) -> ClientHistory:
        """Past employers that are clients, with a one-line alert for the sales team."""
        result = ClientHistory()
        for exp in history:
            client = self.find(exp.company_name, exp.company_linkedin_id)
            if client is None:
                continue
            result.previous_client_companies.append({
                "client_id": client.id,
                "client_name": client.company_name,
                "company_name": exp.company_name,
                "position": exp.position,
                "start_date": exp.start_date,
                "end_date": exp.end_date,
                "is_current": exp.is_current,
            })
        if not result.previous_client_companies:
            return result
        result.has_previous_client_company = True
        if len(result.previous_client_companies) == 1:
            entry = result.previous_client_companies[0]
            role = f" as {entry['position']}" if entry.get("position") and entry["position"] != "Unknown" else ""
            period = format_work_period(entry.get("start_date"), entry.get("end_date"), bool(entry.get("is_current")))
            result.alert = f"Worked at {entry['company_name']}{role}{period}."
        else:
            names = ", ".join(e["company_name"] for e in result.previous_client_companies)
            result.alert = f"Worked at several client companies: {names}."
        return result


def parse_loose_date(text: Optional[str]) -> Optional[datetime]:
    """Parse MM/DD/YYYY, YYYY-MM-DD, YYYY-MM or YYYY."""
    if not text:
        return None
    value = str(text).strip()
    formats = ("%m/%d/%Y", "%Y-%m-%d", "%Y-%m", "%Y")
    # ISO timestamps: keep the date part
    if "T" in value:
        value = value.split("T", 1)[0]
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def format_work_period(start: Optional[str], end: Optional[str], is_current: bool) -> str:
    start_dt = parse_loose_date(start)
    if not start:
        return ""
    start_txt = start_dt.strftime("%B %Y") if start_dt else str(start)
    if is_current or not end:
        return f" since {start_txt}"
    end_dt = parse_loose_date(end)
    end_txt = end_dt.strftime("%B %Y") if end_dt else str(end)
    return f" from {start_txt} to {end_txt}"


def duration_months(start: Optional[str], end: Optional[str]) -> Optional[int]:
    """Whole months between two dates (30.44-day months), at least 1; None if either is unparseable."""
    start_dt = parse_loose_date(start)
    end_dt = parse_loose_date(end)
    if start_dt is None or end_dt is None:
        return None
    days = (end_dt - start_dt).total_seconds() / 86400.0
    return max(1, int(days // 30.44))
