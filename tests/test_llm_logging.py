from __future__ import annotations

import json
from pathlib import Path

from utils.llm_logger import log_call


def test_llm_trace_writes_jsonl(tmp_path, monkeypatch):
    log_file = tmp_path / "llm_calls.jsonl"
    monkeypatch.setenv("LLM_TRACE", "true")
    monkeypatch.setenv("LLM_LOG_PATH", str(log_file))
    monkeypatch.setenv("RUN_ID", "test-run-123")

    log_call(
        caller="unit.test",
        provider="openai",
        model="gpt-x",
        operation="chat.completions.create",
        prompt_name="gate1_recruitment.txt",
        prompt_hash="abc",
        duration_ms=42,
        status="ok",
        usage={"total_tokens": 10},
        extras={"post_id": 7, "dataset_id": "ds-1"},
    )

    assert log_file.exists()
    lines = log_file.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) >= 1
    rec = json.loads(lines[-1])
    assert rec["caller"] == "unit.test"
    assert rec["provider"] == "openai"
    assert rec["operation"] == "chat.completions.create"
    assert rec["run_id"] == "test-run-123"
    assert rec.get("usage", {}).get("total_tokens") == 10


def test_trace_disabled_writes_nothing(tmp_path, monkeypatch):
    log_file = tmp_path / "llm_calls.jsonl"
    monkeypatch.setenv("LLM_TRACE", "false")
    monkeypatch.setenv("LLM_LOG_PATH", str(log_file))

    log_call(caller="unit.test", provider="unipile", model=None, operation="users.get")

    assert not log_file.exists()


def test_usage_aggregated_per_provider_for_run(tmp_path, monkeypatch):
    from services.reporting import _llm_usage_for_run

    log_file = tmp_path / "llm_calls.jsonl"
    monkeypatch.setenv("LLM_TRACE", "true")
    monkeypatch.setenv("LLM_LOG_PATH", str(log_file))
    monkeypatch.setenv("RUN_ID", "run-a")
    log_call(caller="a", provider="openai", model="m", operation="chat", usage={"total_tokens": 120})
    log_call(caller="a", provider="openai", model="m", operation="chat", usage={"total_tokens": 30})
    log_call(caller="b", provider="unipile", model=None, operation="users.get")
    monkeypatch.setenv("RUN_ID", "run-b")
    log_call(caller="a", provider="openai", model="m", operation="chat", usage={"total_tokens": 999})

    usage = _llm_usage_for_run("run-a")

    assert usage == {"openai": {"calls": 2, "tokens": 150}, "unipile": {"calls": 1, "tokens": 0}}


def test_extras_are_nested(tmp_path, monkeypatch):
    log_file = tmp_path / "llm_calls.jsonl"
    monkeypatch.setenv("LLM_TRACE", "true")
    monkeypatch.setenv("LLM_LOG_PATH", str(log_file))

    log_call(caller="c", provider="openai", model="m", operation="chat", extras={"post_id": 7, "status": "x"})

    rec = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert rec["extras"] == {"post_id": 7, "status": "x"}
    assert rec["status"] == "ok"
