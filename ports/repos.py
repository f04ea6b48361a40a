from __future__ import annotations

from typing import Protocol

from models.enrichment_account import EnrichmentAccount


class AccountPoolPort(Protocol):
    def acquire(self) -> EnrichmentAccount:
        ...
