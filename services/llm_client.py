from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional

from config.settings import get_settings
from config.llm_routes import ROUTES
from utils.llm_logger import log_call, sha256_text


class LLMClient:
    """Minimal wrapper to centralize per-use-case routing and logging."""

    def __init__(self) -> None:
        self.settings = get_settings()
        if not self.settings.openai_api_key and not self.settings.is_test:
            raise RuntimeError("OPENAI_API_KEY is required for the classification oracle")
        self._client = None
        self._client_lock = threading.Lock()

    def _openai(self):
        # Gate windows call this from several threads at once
        with self._client_lock:
            if self._client is None:
                from openai import OpenAI
                self._client = OpenAI(api_key=self.settings.openai_api_key, timeout=self.settings.http_timeout_seconds)
        return self._client

    def chat(
        self,
        *,
        use_case: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        prompt_name: Optional[str] = None,
        prompt_text: Optional[str] = None,
        extras: Optional[Dict[str, Any]] = None,
    ) -> Any:
        route = ROUTES.get(use_case, {})
        provider = route.get("provider", "openai")
        model = route.get("model") or self.settings.openai_model or "gpt-4o-mini"
        op = route.get("operation", "chat")
        temp = temperature if temperature is not None else route.get("temperature")

        if provider != "openai":
            raise NotImplementedError(f"Provider not implemented: {provider}")

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            # Gates expect a single JSON object back
            "response_format": {"type": "json_object"},
        }
        if temp is not None:
            kwargs["temperature"] = temp
        if route.get("max_tokens"):
            kwargs["max_tokens"] = route["max_tokens"]

        t0 = time.time()
        try:
            resp = self._openai().chat.completions.create(**kwargs)
        except Exception as e:
            log_call(
                caller=f"llm_client.chat:{use_case}",
                provider=provider,
                model=model,
                operation=op,
                prompt_name=prompt_name,
                prompt_hash=sha256_text(prompt_text),
                duration_ms=int((time.time() - t0) * 1000),
                status="error",
                error=str(e),
                extras=extras,
            )
            raise
        dt_ms = int((time.time() - t0) * 1000)

        usage_obj = None
        usage = getattr(resp, "usage", None)
        if usage:
            usage_obj = {
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
                "total_tokens": getattr(usage, "total_tokens", None),
            }

        log_call(
            caller=f"llm_client.chat:{use_case}",
            provider=provider,
            model=model,
            operation=op,
            prompt_name=prompt_name,
            prompt_hash=sha256_text(prompt_text),
            duration_ms=dt_ms,
            status="ok",
            usage=usage_obj,
            extras=extras,
        )
        return resp
