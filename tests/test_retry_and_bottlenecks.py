from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from db.repos.posts_repo import PostsRepo
from models.post_status import PostStatus
from pipelines.bottlenecks import THRESHOLDS, compute_snapshot
from pipelines.retry import backoff_delay, reconcile, reconcile_loop, retry_posts
from pipelines.runner import RunContext
from pipelines.steps.filter_posts import FilterPosts
from utils.clock import to_iso, utc_now


def _seed_posts(conn, settings, seed_raw, raw_factory, n, dataset="ds-1"):
    seed_raw(dataset, [raw_factory(i) for i in range(n)])
    FilterPosts(conn, settings).run(RunContext(dataset_id=dataset, batch_size=n))
    return [p.id for p in PostsRepo(conn).list_by_status([PostStatus.QUEUED_GATE1], dataset_id=dataset)]


def _set(conn, post_id, status, retry_count=0, minutes_ago=0, last_retry_minutes_ago=None):
    updated = to_iso(utc_now() - timedelta(minutes=minutes_ago))
    last_retry = None
    if last_retry_minutes_ago is not None:
        last_retry = to_iso(utc_now() - timedelta(minutes=last_retry_minutes_ago))
    conn.execute(
        "UPDATE posts SET status = ?, retry_count = ?, last_updated_at = ?, last_retry_at = ? WHERE id = ?",
        (status, retry_count, updated, last_retry, post_id),
    )
    conn.commit()


def test_retry_resets_errors_to_their_queue(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 3)
    _set(conn, ids[0], "error_gate2", retry_count=1)
    _set(conn, ids[1], "error_enrichment", retry_count=2)
    _set(conn, ids[2], "rejected_gate1")

    result = retry_posts(conn, settings)

    assert result.reset == 2
    repo = PostsRepo(conn)
    assert repo.get(ids[0]).status is PostStatus.QUEUED_GATE2
    assert repo.get(ids[1]).status is PostStatus.QUEUED_ENRICHMENT
    # Retry counter is kept; it only grows on failures
    assert repo.get(ids[1]).retry_count == 2
    assert repo.get(ids[2]).status is PostStatus.REJECTED_GATE1


def test_retry_skips_exhausted_unless_forced(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 1)
    _set(conn, ids[0], "error_gate1", retry_count=settings.retry_max_attempts)

    skipped = retry_posts(conn, settings)
    assert (skipped.reset, skipped.skipped_max_retries) == (0, 1)

    forced = retry_posts(conn, settings, force=True)
    assert forced.reset == 1
    assert PostsRepo(conn).get(ids[0]).status is PostStatus.QUEUED_GATE1


def test_retry_filters_by_status_and_post_id(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 3)
    for post_id in ids:
        _set(conn, post_id, "error_gate3", retry_count=1)

    result = retry_posts(conn, settings, statuses=["error_gate3"], post_ids=[ids[1]])
    assert result.post_ids == [ids[1]]
    assert retry_posts(conn, settings, statuses=["error_gate1"]).reset == 0


def test_retry_refuses_rejected_and_completed(conn, settings):
    with pytest.raises(ValueError):
        retry_posts(conn, settings, statuses=["rejected_gate1"])
    with pytest.raises(ValueError):
        retry_posts(conn, settings, statuses=["completed"])


def test_stuck_processing_posts_are_reset(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 2)
    _set(conn, ids[0], "processing_gate1", minutes_ago=settings.stuck_after_minutes + 5)
    _set(conn, ids[1], "processing_enrichment", minutes_ago=1)

    result = retry_posts(conn, settings, include_stuck=True)

    assert result.post_ids == [ids[0]]
    repo = PostsRepo(conn)
    assert repo.get(ids[0]).status is PostStatus.QUEUED_GATE1
    # A fresh claim is left alone
    assert repo.get(ids[1]).status is PostStatus.PROCESSING_ENRICHMENT


def test_backoff_delay_doubles_and_caps():
    assert backoff_delay(1, 60, 3600) == 60
    assert backoff_delay(2, 60, 3600) == 120
    assert backoff_delay(3, 60, 3600) == 240
    assert backoff_delay(10, 60, 3600) == 3600
    assert backoff_delay(0, 60, 3600) == 60


def test_reconcile_respects_backoff_and_max_attempts(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 3)
    cfg = dataclasses.replace(settings, retry_base_seconds=60, retry_max_seconds=3600, retry_max_attempts=3)
    # 2 failures: backoff 120s, last try 5 minutes ago -> due
    _set(conn, ids[0], "error_gate1", retry_count=2, last_retry_minutes_ago=5)
    # 2 failures, last try 1 minute ago -> not due
    _set(conn, ids[1], "error_gate2", retry_count=2, last_retry_minutes_ago=1)
    # Exhausted -> left for the operator
    _set(conn, ids[2], "error_gate3", retry_count=3, last_retry_minutes_ago=600)

    result = reconcile(conn, cfg)

    assert (result.reset, result.not_due) == (1, 1)
    repo = PostsRepo(conn)
    assert repo.get(ids[0]).status is PostStatus.QUEUED_GATE1
    assert repo.get(ids[1]).status is PostStatus.ERROR_GATE2
    assert repo.get(ids[2]).status is PostStatus.ERROR_GATE3


def test_reconcile_loop_runs_given_iterations(conn, settings):
    sleeps = []
    results = reconcile_loop(conn, settings, interval_seconds=5, iterations=3, sleep=sleeps.append)
    assert len(results) == 3
    assert sleeps == [5, 5]


def test_bottleneck_snapshot_flags_backlogs(conn, settings, seed_raw, raw_factory):
    over = THRESHOLDS["gate1"] + 1
    _seed_posts(conn, settings, seed_raw, raw_factory, over)

    snap = compute_snapshot(conn, "ds-1", settings)

    assert snap.queued["gate1"] == over
    assert [b.position for b in snap.bottlenecks] == ["gate1"]
    assert snap.bottlenecks[0].severity == "medium"
    assert "Gate 1 backlog exceeds 50" in snap.recommendations[0]


def test_bottleneck_snapshot_reports_errors_and_stuck(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 3)
    _set(conn, ids[0], "error_enrichment", retry_count=1)
    _set(conn, ids[1], "processing_gate2", minutes_ago=settings.stuck_after_minutes + 1)
    _set(conn, ids[2], "rejected_gate3")

    snap = compute_snapshot(conn, None, settings)

    assert snap.errored["enrichment"] == 1
    assert snap.total_errored == 1
    assert snap.stuck == 1
    assert snap.rejected["gate3"] == 1
    assert "enrichment" not in snap.rejected
    assert any("retry" in r for r in snap.recommendations)
    assert any("stuck" in r for r in snap.recommendations)
    assert snap.as_dict()["total_errored"] == 1


def test_empty_snapshot_has_no_recommendations(conn, settings):
    snap = compute_snapshot(conn, None, settings)
    assert snap.recommendations == []
    assert snap.leads == 0


def test_reconcile_reaches_due_posts_behind_backing_off_ones(conn, settings, seed_raw, raw_factory):
    ids = _seed_posts(conn, settings, seed_raw, raw_factory, 4)
    cfg = dataclasses.replace(settings, retry_base_seconds=60, retry_max_seconds=3600, retry_max_attempts=5, retry_limit=2)
    # Oldest rows are still backing off and fill the first page
    for post_id in ids[:3]:
        _set(conn, post_id, "error_gate1", retry_count=4, minutes_ago=30, last_retry_minutes_ago=1)
    _set(conn, ids[3], "error_gate2", retry_count=1, minutes_ago=0, last_retry_minutes_ago=5)

    result = reconcile(conn, cfg)

    assert (result.reset, result.not_due) == (1, 3)
    assert PostsRepo(conn).get(ids[3]).status is PostStatus.QUEUED_GATE2
