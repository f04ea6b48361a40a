from __future__ import annotations

import logging
import random
from typing import List, Optional

from db.repos.accounts_repo import AccountsRepo
from models.enrichment_account import EnrichmentAccount

logger = logging.getLogger(__name__)


class NoAccountAvailableError(RuntimeError):
    """No active enrichment account is registered."""


class AccountPool:
    """Load-balanced selection of shared enrichment accounts.

    round_robin picks the least recently used active account, so rotation
    carries across separate stage invocations. random picks uniformly.
    Accounts are never locked; two invocations may get the same one.
    """

    def __init__(self, repo: AccountsRepo, strategy: str = "round_robin", rng: Optional[random.Random] = None) -> None:
        if strategy not in ("round_robin", "random"):
            raise ValueError(f"Unknown account selection strategy: {strategy}")
        self.repo = repo
        self.strategy = strategy
        self._rng = rng or random.Random()

    def acquire(self) -> EnrichmentAccount:
        accounts: List[EnrichmentAccount] = self.repo.list_active()
        if not accounts:
            raise NoAccountAvailableError("No active enrichment account configured")
        if self.strategy == "random":
            chosen = self._rng.choice(accounts)
        else:
            # Never-used accounts first, then oldest use
            chosen = min(accounts, key=lambda a: (a.last_used_at is not None, a.last_used_at or "", a.usage_count, a.id))
        self.repo.record_use(chosen.account_id)
        logger.info("Enrichment account selected", extra={"step": "enrichment", "status": chosen.account_id})
        return chosen
