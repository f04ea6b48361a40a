from __future__ import annotations

import sqlite3

import pytest

from db.repos.posts_repo import PostsRepo
from db.repos.raw_posts_repo import RawPostsRepo
from models.post_status import PostStatus
from models.raw_post import RawPost
from pipelines.runner import RunContext
from pipelines.steps.filter_posts import FilterPosts
from services.mapping import map_scraped_post
from services.post_validator import PostValidator


def _run(conn, settings, dataset="ds-1", batch=100):
    return FilterPosts(conn, settings).run(RunContext(dataset_id=dataset, batch_size=batch))


def test_filter_promotes_valid_posts(conn, settings, seed_raw, raw_factory):
    seed_raw("ds-1", [raw_factory(i) for i in range(3)])
    result = _run(conn, settings)

    assert result.advanced == 3
    assert result.details["posts_queued"] == 3
    posts = PostsRepo(conn).list_by_status([PostStatus.QUEUED_GATE1])
    assert len(posts) == 3
    assert all(p.retry_count == 0 for p in posts)
    assert RawPostsRepo(conn).count_unprocessed("ds-1") == 0


def test_filter_drops_short_reposts_and_incomplete(conn, settings, seed_raw, raw_factory):
    seed_raw("ds-1", [
        raw_factory(1, text="Too short"),
        raw_factory(2, is_repost=True),
        raw_factory(3, author_profile_id=None),
        raw_factory(4, author_name=""),
        raw_factory(5, url=None, urn=None),
        raw_factory(6),
    ])
    result = _run(conn, settings)

    assert result.details["posts_filtered"] == 5
    assert result.advanced == 1
    # Dropped posts are consumed too
    assert RawPostsRepo(conn).count_unprocessed("ds-1") == 0


def test_filter_dedupes_within_batch_and_against_pipeline(conn, settings, seed_raw, raw_factory):
    seed_raw("ds-1", [raw_factory(1), raw_factory(1, text=raw_factory(1)["text"] + " (edit)")])
    first = _run(conn, settings)
    assert first.advanced == 1
    assert first.details["posts_duplicates"] == 1

    # Same URN arriving in a later dataset
    seed_raw("ds-2", [raw_factory(1, url="https://www.linkedin.com/posts/other-url")])
    second = _run(conn, settings, dataset="ds-2")
    assert second.advanced == 0
    assert second.details["posts_duplicates"] == 1
    assert len(PostsRepo(conn).list_by_status([PostStatus.QUEUED_GATE1])) == 1


def test_filter_rerun_is_idempotent(conn, settings, seed_raw, raw_factory):
    seed_raw("ds-1", [raw_factory(i) for i in range(2)])
    _run(conn, settings)
    again = _run(conn, settings)
    assert again.processed == 0
    assert PostsRepo(conn).count_by_status("ds-1") == {"queued_gate1": 2}


def test_filter_respects_batch_size(conn, settings, seed_raw, raw_factory):
    seed_raw("ds-1", [raw_factory(i) for i in range(5)])
    result = _run(conn, settings, batch=2)
    assert result.processed == 2
    assert RawPostsRepo(conn).count_unprocessed("ds-1") == 3


def test_filter_store_failure_leaves_batch_unprocessed(conn, settings, seed_raw, raw_factory, monkeypatch):
    seed_raw("ds-1", [raw_factory(i) for i in range(3)])

    def _boom(self, posts, commit=True):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(PostsRepo, "insert_queued", _boom)
    with pytest.raises(sqlite3.OperationalError):
        _run(conn, settings)

    assert RawPostsRepo(conn).count_unprocessed("ds-1") == 3
    assert PostsRepo(conn).count_by_status("ds-1") == {}


def test_filter_requires_dataset(conn, settings):
    with pytest.raises(ValueError):
        FilterPosts(conn, settings).run(RunContext(dataset_id=None, batch_size=10))


def test_mapping_accepts_camel_case_export():
    item = {
        "urn": "urn:li:activity:42",
        "postUrl": "https://www.linkedin.com/posts/x",
        "text": "hello",
        "postedAtTimestamp": "1714644000000",
        "isRepost": "false",
        "author": {"name": "Jean Dupont", "id": "ACoAAJD", "url": "https://www.linkedin.com/in/jdupont"},
    }
    mapped = map_scraped_post(item)
    assert mapped["url"] == "https://www.linkedin.com/posts/x"
    assert mapped["posted_at_timestamp"] == 1714644000000
    assert mapped["is_repost"] is False
    assert mapped["author_name"] == "Jean Dupont"
    assert mapped["author_profile_id"] == "ACoAAJD"
    assert mapped["raw_data"] is item


def test_validator_lists_drop_reasons(raw_factory):
    validator = PostValidator(min_text_length=50)
    ok = RawPost.model_validate({"dataset_id": "ds-1", **raw_factory(1)})
    assert validator.validate(ok) == []

    bad = RawPost.model_validate({"dataset_id": "ds-1", **raw_factory(2, text="short", is_repost=True, url=None, urn=None)})
    errors = validator.validate(bad)
    assert errors == ["repost", "Text shorter than 50 characters", "Missing both url and urn"]
