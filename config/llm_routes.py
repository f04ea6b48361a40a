from __future__ import annotations

import os


# Central routing for classification gates. Edit here to change per-gate defaults.
# Per-route model can be overridden via env vars for quick testing.
#
# Keys are use_case identifiers consumed by services/llm_client.py
ROUTES: dict[str, dict] = {
    # Gate 1: is the author actively recruiting for their own company
    "gate1_recruitment": {
        "provider": "openai",
        "model": os.getenv("OPENAI_MODEL_GATE1"),  # falls back to global OPENAI_MODEL
        "temperature": 0.1,
        "max_tokens": 500,
        "prompt": "gate1_recruitment.txt",
        "operation": "gate1_recruitment",
    },
    # Gate 2: language / location eligibility
    "gate2_location": {
        "provider": "openai",
        "model": os.getenv("OPENAI_MODEL_GATE2"),
        "temperature": 0.1,
        "max_tokens": 300,
        "prompt": "gate2_location.txt",
        "operation": "gate2_location",
    },
    # Gate 3: category + normalized role extraction
    "gate3_category": {
        "provider": "openai",
        "model": os.getenv("OPENAI_MODEL_GATE3"),
        "temperature": 0.1,
        "max_tokens": 400,
        "prompt": "gate3_category.txt",
        "operation": "gate3_category",
    },
}
