from __future__ import annotations

import dataclasses
import os
import sys
import threading
import time
from pathlib import Path

import pytest


def pytest_configure():
    # Ensure project root is on sys.path for absolute imports like 'pipelines.steps.gates'
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    # Set test environment knobs
    os.environ.setdefault("RUN_ENV", "test")


@pytest.fixture(autouse=True)
def _fresh_settings():
    from config.settings import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Test settings with every pause and delay disabled."""
    from config.settings import get_settings
    return dataclasses.replace(
        get_settings(),
        gate_window_pause_ms=0,
        chain_pause_seconds=0.0,
        enrichment_min_delay_ms=0,
        enrichment_max_delay_ms=0,
        strict_verdicts=True,
        llm_trace=False,
    )


@pytest.fixture
def conn(tmp_path):
    from db import schema
    from db.connection import get_connection
    c = get_connection(str(tmp_path / "pipeline.db"))
    schema.bootstrap(c)
    try:
        yield c
    finally:
        c.close()


def make_raw(i: int, **overrides):
    rec = {
        "urn": f"urn:li:activity:{1000 + i}",
        "url": f"https://www.linkedin.com/posts/author-{i}_activity-{1000 + i}",
        "text": (
            "Nous recrutons un Data Engineer en CDI pour notre équipe à Paris. "
            "Rejoignez-nous pour construire notre plateforme de données !"
        ),
        "title": "Hiring",
        "posted_at_iso": "2024-05-02T10:00:00Z",
        "posted_at_timestamp": 1714644000000 + i,
        "author_type": "Person",
        "author_profile_url": f"https://www.linkedin.com/in/author-{i}",
        "author_profile_id": f"ACoAA{i:04d}",
        "author_name": f"Alice Martin{i}",
        "author_headline": "Head of Data",
        "is_repost": False,
    }
    rec.update(overrides)
    return rec


@pytest.fixture
def raw_factory():
    return make_raw


@pytest.fixture
def seed_raw(conn):
    from db.repos.raw_posts_repo import RawPostsRepo

    def _seed(dataset_id, records):
        return RawPostsRepo(conn).insert_many(dataset_id, records)
    return _seed


class FakeClassifier:
    """In-process classification oracle; answers are swappable per gate."""

    def __init__(self):
        from models.verdicts import Gate1Verdict, Gate2Verdict, Gate3Verdict
        self.gate1_answer = lambda post: Gate1Verdict(verdict="yes", roles="Data Engineer")
        self.gate2_answer = lambda post: Gate2Verdict(verdict="oui", language="français", location="France")
        self.gate3_answer = lambda post: Gate3Verdict(
            category="Tech", selected_roles=["Data Engineer"], justification="Data platform role"
        )
        self.calls = {"gate1": [], "gate2": [], "gate3": []}
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _call(self, gate, post):
        with self._lock:
            self.calls[gate].append(post.id)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            return getattr(self, f"{gate}_answer")(post)
        finally:
            with self._lock:
                self.in_flight -= 1

    def gate1(self, post):
        return self._call("gate1", post)

    def gate2(self, post):
        return self._call("gate2", post)

    def gate3(self, post):
        return self._call("gate3", post)


PROFILE_PAYLOAD = {
    "first_name": "Alice",
    "work_experience": [
        {"company": "Acme SAS", "position": "Head of Data", "start": "2021-01-01", "company_id": "111"},
        {"companyName": "Globex", "title": "Lead Developer", "startDate": "2017-03-01", "endDate": "2020-12-31", "companyId": "222"},
        {"company": "Initech", "job_title": "Developer", "start": "2014-09-01", "end": "2017-02-28"},
    ],
    "phone_numbers": ["+33 6 12 34 56 78"],
}


class FakeEnricher:
    """In-process enrichment oracle keyed by profile identifier."""

    def __init__(self):
        self.payloads = {}
        self.default = PROFILE_PAYLOAD
        self.fail_for = set()
        self.calls = []

    def fetch_profile(self, profile_identifier, account_id):
        from services.unipile_client import EnrichmentError
        self.calls.append((profile_identifier, account_id))
        if profile_identifier in self.fail_for:
            raise EnrichmentError("Network error: read timed out")
        return self.payloads.get(profile_identifier, self.default)


@pytest.fixture
def fake_classifier():
    return FakeClassifier()


@pytest.fixture
def fake_enricher():
    return FakeEnricher()


@pytest.fixture
def account(conn):
    from db.repos.accounts_repo import AccountsRepo
    AccountsRepo(conn).upsert("acc-main", "Main seat")
    return "acc-main"


@pytest.fixture
def orchestrator(conn, settings, fake_classifier, fake_enricher, account):
    from pipelines.orchestrator import Orchestrator
    return Orchestrator(
        conn,
        settings,
        classifier=fake_classifier,
        enricher=fake_enricher,
        sleep=lambda s: None,
    )
