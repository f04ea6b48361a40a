from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from config.settings import Settings, get_settings
from utils.llm_logger import log_call

logger = logging.getLogger(__name__)

# Client errors that will not succeed on retry
_NO_RETRY_STATUSES = frozenset({400, 401, 403, 404})


class EnrichmentError(RuntimeError):
    """Enrichment oracle call failed; `status_code` is set when the API answered."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnipileClient:
    """Profile enrichment oracle over the Unipile REST API.

    Spaces calls per account by a random delay in
    [ENRICHMENT_MIN_DELAY_MS, ENRICHMENT_MAX_DELAY_MS] and retries 429/5xx and
    network errors with exponential backoff capped at 30s.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if not self.settings.unipile_api_key and not self.settings.is_test:
            raise RuntimeError("UNIPILE_API_KEY is required for the enrichment oracle")
        self.session = session or requests.Session()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._last_call: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _wait_for_account(self, account_id: str) -> None:
        min_ms = self.settings.enrichment_min_delay_ms
        max_ms = self.settings.enrichment_max_delay_ms
        with self._lock:
            last = self._last_call.get(account_id)
            spacing = self._rng.uniform(min_ms, max_ms) / 1000.0 if max_ms > 0 else 0.0
            wait = 0.0 if last is None else max(0.0, last + spacing - time.monotonic())
        if wait > 0:
            logger.debug("Spacing enrichment call", extra={"step": "enrichment", "duration_ms": int(wait * 1000)})
            self._sleep(wait)
        with self._lock:
            self._last_call[account_id] = time.monotonic()

    @staticmethod
    def backoff_seconds(attempt: int) -> float:
        """Delay before retry number `attempt` (1-based): min(1s * 2^attempt, 30s)."""
        return min(1000 * (2 ** attempt), 30000) / 1000.0

    def fetch_profile(self, profile_identifier: str, account_id: str) -> Dict[str, Any]:
        if not profile_identifier:
            raise EnrichmentError("Missing profile identifier")
        url = f"{self.settings.unipile_base_url}/api/v1/users/{profile_identifier}"
        params = {"account_id": account_id, "linkedin_sections": "experience"}
        headers = {"X-API-KEY": self.settings.unipile_api_key or "", "Accept": "application/json"}

        attempts = self.settings.enrichment_max_attempts
        last_error: Optional[EnrichmentError] = None
        for attempt in range(1, attempts + 1):
            self._wait_for_account(account_id)
            t0 = time.time()
            try:
                resp = self.session.get(url, params=params, headers=headers, timeout=self.settings.http_timeout_seconds)
            except requests.RequestException as e:
                last_error = EnrichmentError(f"Network error: {e}")
            else:
                dt_ms = int((time.time() - t0) * 1000)
                if resp.status_code == 200:
                    try:
                        data = resp.json()
                    except ValueError as e:
                        last_error = EnrichmentError(f"Invalid JSON from enrichment API: {e}", resp.status_code)
                        self._trace("error", dt_ms, str(last_error), profile_identifier, account_id, attempt)
                        raise last_error from e
                    self._trace("ok", dt_ms, None, profile_identifier, account_id, attempt)
                    if not isinstance(data, dict):
                        raise EnrichmentError("Enrichment API returned a non-object payload", resp.status_code)
                    return data
                last_error = EnrichmentError(
                    f"Enrichment API error {resp.status_code}: {(resp.text or '')[:200]}", resp.status_code
                )
                if resp.status_code in _NO_RETRY_STATUSES:
                    self._trace("error", dt_ms, str(last_error), profile_identifier, account_id, attempt)
                    raise last_error
            self._trace("error", int((time.time() - t0) * 1000), str(last_error), profile_identifier, account_id, attempt)
            if attempt < attempts:
                delay = self.backoff_seconds(attempt)
                logger.warning(
                    "Enrichment attempt failed; backing off",
                    extra={"step": "enrichment", "error": str(last_error), "duration_ms": int(delay * 1000)},
                )
                self._sleep(delay)
        assert last_error is not None
        raise last_error

    def _trace(self, status: str, duration_ms: int, error: Optional[str], profile_identifier: str, account_id: str, attempt: int) -> None:
        log_call(
            caller="unipile_client.fetch_profile",
            provider="unipile",
            model=None,
            operation="users.get",
            duration_ms=duration_ms,
            status=status,
            error=error,
            extras={"profile": profile_identifier, "account_id": account_id, "attempt": attempt},
        )
