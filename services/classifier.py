from __future__ import annotations

import json
import re
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

from pydantic import ValidationError

from config.llm_routes import ROUTES
from models.post_record import PostRecord
from models.verdicts import Gate1Verdict, Gate2Verdict, Gate3Verdict
from ports.llm import LLMClientPort


PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_SYSTEM_MESSAGES = {
    "gate1_recruitment": "You are an expert in analysing LinkedIn recruitment posts.",
    "gate2_location": "You are an expert in linguistic and geographic analysis.",
    "gate3_category": "You are an expert in categorising job offers.",
}

# Minimal inline fallbacks if a prompt file is missing
_FALLBACK_PROMPTS = {
    "gate1_recruitment": (
        'Is the author of this post recruiting for their own company? Post: "$text". '
        'Return ONLY JSON: {"verdict": "yes"|"no", "roles": "..."}'
    ),
    "gate2_location": (
        'Is this post written in French and targeting France, Belgium, Switzerland, Luxembourg or Monaco? Post: "$text". '
        'Return ONLY JSON: {"verdict": "yes"|"no", "language": "...", "location": "...", "reason": "..."}'
    ),
    "gate3_category": (
        'Categorise this recruitment post. Post: "$text". Positions: "$gate1_roles". '
        'Return ONLY JSON: {"category": "...", "selected_roles": ["..."], "justification": "..."}'
    ),
}


class OracleError(RuntimeError):
    """Classification oracle failed or returned something that is not a verdict."""


def _load_prompt_template(use_case: str) -> str:
    name = ROUTES.get(use_case, {}).get("prompt") or f"{use_case}.txt"
    try:
        return (PROMPTS_DIR / name).read_text(encoding="utf-8")
    except OSError:
        return _FALLBACK_PROMPTS[use_case]


def _extract_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except ValueError:
        pass
    # Fenced code block
    m = re.search(r"```(?:json)?\n([\s\S]*?)\n```", text)
    if m:
        try:
            parsed = json.loads(m.group(1))
            return parsed if isinstance(parsed, dict) else None
        except ValueError:
            pass
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(text[start : end + 1])
            return parsed if isinstance(parsed, dict) else None
        except ValueError:
            return None
    return None


def _post_vars(post: PostRecord) -> Dict[str, str]:
    return {
        "text": post.text or "",
        "title": post.title or "N/A",
        "author_name": post.author_name or "",
        "author_type": post.author_type or "N/A",
        "author_headline": post.author_headline or "N/A",
        "gate1_roles": post.gate1_roles or "",
    }


class OpenAIClassifier:
    """Classification oracle backed by the chat completions API."""

    def __init__(self, llm: Optional[LLMClientPort] = None) -> None:
        if llm is None:
            from services.llm_client import LLMClient
            llm = LLMClient()
        self.llm = llm
        self._templates: Dict[str, str] = {}

    def _ask(self, use_case: str, post: PostRecord) -> Dict[str, Any]:
        if use_case not in self._templates:
            self._templates[use_case] = _load_prompt_template(use_case)
        template = self._templates[use_case]
        prompt = Template(template).safe_substitute(_post_vars(post))
        try:
            resp = self.llm.chat(
                use_case=use_case,
                messages=[
                    {"role": "system", "content": _SYSTEM_MESSAGES[use_case]},
                    {"role": "user", "content": prompt},
                ],
                prompt_name=ROUTES.get(use_case, {}).get("prompt"),
                prompt_text=template,
                extras={"post_id": post.id, "dataset_id": post.dataset_id},
            )
        except Exception as e:
            raise OracleError(f"{use_case} call failed: {e}") from e
        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise OracleError(f"{use_case} returned no message") from e
        data = _extract_json(content)
        if data is None:
            raise OracleError(f"{use_case} returned non-JSON content")
        return data

    def gate1(self, post: PostRecord) -> Gate1Verdict:
        return self._parse(Gate1Verdict, self._ask("gate1_recruitment", post))

    def gate2(self, post: PostRecord) -> Gate2Verdict:
        return self._parse(Gate2Verdict, self._ask("gate2_location", post))

    def gate3(self, post: PostRecord) -> Gate3Verdict:
        return self._parse(Gate3Verdict, self._ask("gate3_category", post))

    @staticmethod
    def _parse(model, data: Dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise OracleError(f"Unparseable verdict: {e.errors()[:1]}") from e
