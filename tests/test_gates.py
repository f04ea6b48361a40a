from __future__ import annotations

import dataclasses

from db.repos.posts_repo import PostsRepo
from models.post_status import PostStatus
from models.verdicts import Gate1Verdict, Gate2Verdict, Gate3Verdict, normalize_verdict
from pipelines.runner import RunContext
from pipelines.steps.filter_posts import FilterPosts
from pipelines.steps.gates import CategoryGate, LocationGate, RecruitmentGate
from services.classifier import OracleError


def _queue_posts(conn, settings, seed_raw, raw_factory, n, status=None):
    seed_raw("ds-1", [raw_factory(i) for i in range(n)])
    FilterPosts(conn, settings).run(RunContext(dataset_id="ds-1", batch_size=n))
    if status is not None:
        conn.execute("UPDATE posts SET status = ?", (status.value,))
        conn.commit()


def _ctx(batch=50):
    return RunContext(dataset_id="ds-1", batch_size=batch)


def test_gate1_advances_and_rejects(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 4)
    posts = PostsRepo(conn).list_by_status([PostStatus.QUEUED_GATE1])
    rejected_ids = {posts[0].id, posts[1].id}
    fake_classifier.gate1_answer = lambda post: (
        Gate1Verdict(verdict="no") if post.id in rejected_ids else Gate1Verdict(verdict="oui", roles=["Data Engineer", "SRE"])
    )

    result = RecruitmentGate(conn, fake_classifier, settings).run(_ctx())

    assert (result.processed, result.advanced, result.rejected, result.failed) == (4, 2, 2, 0)
    repo = PostsRepo(conn)
    for post_id in rejected_ids:
        post = repo.get(post_id)
        assert post.status is PostStatus.REJECTED_GATE1
        assert post.gate1_verdict == "no"
    advanced = repo.list_by_status([PostStatus.QUEUED_GATE2])
    assert len(advanced) == 2
    assert advanced[0].gate1_roles == "Data Engineer, SRE"
    assert advanced[0].gate1_response["verdict"] == "oui"


def test_gate2_records_location(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 2, status=PostStatus.QUEUED_GATE2)
    fake_classifier.gate2_answer = lambda post: Gate2Verdict.model_validate(
        {"reponse": "non", "langue": "anglais", "localisation_detectee": "London", "raison": "UK role"}
    )
    result = LocationGate(conn, fake_classifier, settings).run(_ctx())

    assert result.rejected == 2
    post = PostsRepo(conn).list_by_status([PostStatus.REJECTED_GATE2])[0]
    assert post.gate2_location == "London"
    assert post.gate2_reason == "UK role"


def test_gate3_uncategorized_is_rejected(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 2, status=PostStatus.QUEUED_GATE3)
    first = PostsRepo(conn).list_by_status([PostStatus.QUEUED_GATE3])[0]
    fake_classifier.gate3_answer = lambda post: (
        Gate3Verdict(category="Autre", justification="Not a job offer") if post.id == first.id
        else Gate3Verdict(category="Tech", selected_roles="Data Engineer, Data Analyst")
    )
    result = CategoryGate(conn, fake_classifier, settings).run(_ctx())

    assert (result.advanced, result.rejected) == (1, 1)
    repo = PostsRepo(conn)
    assert repo.get(first.id).status is PostStatus.REJECTED_GATE3
    queued = repo.list_by_status([PostStatus.QUEUED_ENRICHMENT])
    assert queued[0].gate3_category == "Tech"
    assert queued[0].gate3_selected_roles == ["Data Engineer", "Data Analyst"]


def test_gate3_missing_category_is_an_error_when_strict(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 1, status=PostStatus.QUEUED_GATE3)
    fake_classifier.gate3_answer = lambda post: Gate3Verdict()
    result = CategoryGate(conn, fake_classifier, settings).run(_ctx())
    assert result.failed == 1
    assert PostsRepo(conn).count_by_status() == {"error_gate3": 1}


def test_oracle_failure_moves_post_to_error(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 3)
    posts = PostsRepo(conn).list_by_status([PostStatus.QUEUED_GATE1])
    broken = posts[1].id

    def _answer(post):
        if post.id == broken:
            raise OracleError("gate1_recruitment call failed: timeout")
        return Gate1Verdict(verdict="yes", roles="Dev")

    fake_classifier.gate1_answer = _answer
    result = RecruitmentGate(conn, fake_classifier, settings).run(_ctx())

    assert (result.advanced, result.failed) == (2, 1)
    post = PostsRepo(conn).get(broken)
    assert post.status is PostStatus.ERROR_GATE1
    assert post.retry_count == 1
    assert post.last_retry_at is not None
    assert "timeout" in post.last_error


def test_unrecognized_verdict_strict_vs_lenient(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 2)
    fake_classifier.gate1_answer = lambda post: Gate1Verdict(verdict="peut-être")

    strict = RecruitmentGate(conn, fake_classifier, settings).run(_ctx(batch=1))
    assert strict.failed == 1

    lenient_settings = dataclasses.replace(settings, strict_verdicts=False)
    lenient = RecruitmentGate(conn, fake_classifier, lenient_settings).run(_ctx(batch=1))
    assert lenient.rejected == 1
    assert PostsRepo(conn).count_by_status() == {"error_gate1": 1, "rejected_gate1": 1}


def test_gate_calls_are_bounded_and_windowed(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 10)
    fake_classifier.delay = 0.02
    pauses = []
    windowed = dataclasses.replace(settings, gate_concurrency=3, gate_window_pause_ms=100)

    result = RecruitmentGate(conn, fake_classifier, windowed, sleep=pauses.append).run(_ctx())

    assert result.advanced == 10
    assert fake_classifier.max_in_flight <= 3
    # 4 windows (3+3+3+1), pause between each
    assert pauses == [0.1, 0.1, 0.1]


def test_batch_size_limits_claim_and_claims_are_exclusive(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 5)
    repo = PostsRepo(conn)
    first = repo.claim(PostStatus.QUEUED_GATE1, PostStatus.PROCESSING_GATE1, "ds-1", 3)
    second = repo.claim(PostStatus.QUEUED_GATE1, PostStatus.PROCESSING_GATE1, "ds-1", 3)

    assert len(first) == 3 and len(second) == 2
    assert not {p.id for p in first} & {p.id for p in second}
    assert all(p.status is PostStatus.PROCESSING_GATE1 for p in first + second)
    # Nothing left for the gate itself
    result = RecruitmentGate(conn, fake_classifier, settings).run(_ctx())
    assert result.processed == 0
    assert fake_classifier.calls["gate1"] == []


def test_lost_claim_is_counted_not_overwritten(conn, settings, seed_raw, raw_factory, fake_classifier):
    _queue_posts(conn, settings, seed_raw, raw_factory, 1)

    class _ResetMidFlight(RecruitmentGate):
        def route(self, post, verdict):
            # Operator reset the post while the oracle call was in flight
            conn.execute("UPDATE posts SET status = 'queued_gate1' WHERE id = ?", (post.id,))
            return super().route(post, verdict)

    result = _ResetMidFlight(conn, fake_classifier, settings).run(_ctx())
    assert result.lost == 1
    assert PostsRepo(conn).count_by_status() == {"queued_gate1": 1}


def test_verdict_tokens():
    assert normalize_verdict("OUI") is True
    assert normalize_verdict(" yes. ") is True
    assert normalize_verdict("non") is False
    assert normalize_verdict(False) is False
    assert normalize_verdict("maybe") is None
    assert normalize_verdict(None) is None
