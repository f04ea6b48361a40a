from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _load_env() -> None:
    # Centralized dotenv loading; safe if .env missing
    load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # Core/runtime
    db_path: str
    run_env: str
    log_level: str

    openai_api_key: str | None
    openai_model: str

    unipile_api_key: str | None
    unipile_base_url: str
    http_timeout_seconds: int

    # Batch sizes per stage
    filter_batch_size: int
    gate_batch_size: int
    enrichment_batch_size: int
    lead_batch_size: int

    # Ingestion
    min_post_length: int

    # Concurrency/pacing
    gate_concurrency: int
    gate_window_pause_ms: int
    chain_pause_seconds: float
    enrichment_min_delay_ms: int
    enrichment_max_delay_ms: int
    enrichment_max_attempts: int
    account_selection: str  # round_robin | random

    # Verdict parsing
    strict_verdicts: bool

    # Retry / reconciliation
    retry_max_attempts: int
    retry_base_seconds: int
    retry_max_seconds: int
    stuck_after_minutes: int
    retry_limit: int

    # Logging/tracing
    llm_trace: bool = False
    llm_log_path: str = "logs/llm_calls.jsonl"

    @property
    def is_test(self) -> bool:
        return (self.run_env or "").lower() == "test"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_env()
    account_selection = os.getenv("ACCOUNT_SELECTION", "round_robin").lower()
    if account_selection not in ("round_robin", "random"):
        raise RuntimeError(f"ACCOUNT_SELECTION must be round_robin or random, got {account_selection!r}")
    min_delay = int(os.getenv("ENRICHMENT_MIN_DELAY_MS", "2000"))
    max_delay = int(os.getenv("ENRICHMENT_MAX_DELAY_MS", "8000"))
    if max_delay < min_delay:
        raise RuntimeError("ENRICHMENT_MAX_DELAY_MS must be >= ENRICHMENT_MIN_DELAY_MS")
    return Settings(
        db_path=os.getenv("DB_PATH", "leads.db"),
        run_env=os.getenv("RUN_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        unipile_api_key=os.getenv("UNIPILE_API_KEY"),
        unipile_base_url=os.getenv("UNIPILE_BASE_URL", "https://api9.unipile.com:13946").rstrip("/"),
        http_timeout_seconds=int(os.getenv("HTTP_TIMEOUT_SECONDS", "20")),
        filter_batch_size=int(os.getenv("FILTER_BATCH_SIZE", "100")),
        gate_batch_size=int(os.getenv("GATE_BATCH_SIZE", "50")),
        enrichment_batch_size=int(os.getenv("ENRICHMENT_BATCH_SIZE", "30")),
        lead_batch_size=int(os.getenv("LEAD_BATCH_SIZE", "50")),
        min_post_length=int(os.getenv("MIN_POST_LENGTH", "50")),
        gate_concurrency=max(1, int(os.getenv("GATE_CONCURRENCY", "5"))),
        gate_window_pause_ms=int(os.getenv("GATE_WINDOW_PAUSE_MS", "100")),
        chain_pause_seconds=float(os.getenv("CHAIN_PAUSE_SECONDS", "1.0")),
        enrichment_min_delay_ms=min_delay,
        enrichment_max_delay_ms=max_delay,
        enrichment_max_attempts=max(1, int(os.getenv("ENRICHMENT_MAX_ATTEMPTS", "3"))),
        account_selection=account_selection,
        strict_verdicts=_as_bool(os.getenv("STRICT_VERDICTS"), default=True),
        retry_max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
        retry_base_seconds=int(os.getenv("RETRY_BASE_SECONDS", "60")),
        retry_max_seconds=int(os.getenv("RETRY_MAX_SECONDS", "3600")),
        stuck_after_minutes=int(os.getenv("STUCK_AFTER_MINUTES", "30")),
        retry_limit=int(os.getenv("RETRY_LIMIT", "50")),
        llm_trace=_as_bool(os.getenv("LLM_TRACE")),
        llm_log_path=os.getenv("LLM_LOG_PATH", "logs/llm_calls.jsonl"),
    )
