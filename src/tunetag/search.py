from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tunetag import logger as logger_mod

from .models import ProviderWarning, Query, RankedResult
from .registry import ProviderRegistry
from .scoring import CandidateScorer

log = logger_mod.get_logger()


@dataclass
class SearchOutcome:
    query: Query
    results: List[RankedResult] = field(default_factory=list)
    warnings: List[ProviderWarning] = field(default_factory=list)

    @property
    def best(self) -> Optional[RankedResult]:
        return self.results[0] if self.results else None


class SearchCoordinator:
    """Run ranked searches where a newer query for a slot supersedes older ones.

    A slot is any UI location that shows results (the search panel, the batch
    dialog). Results of a superseded query are discarded, never returned.
    """

    def __init__(self, registry: ProviderRegistry, scorer: Optional[CandidateScorer] = None):
        self._registry = registry
        self._scorer = scorer or CandidateScorer()
        self._tokens: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _issue(self, slot: str) -> int:
        with self._lock:
            token = self._tokens.get(slot, 0) + 1
            self._tokens[slot] = token
            return token

    def is_current(self, slot: str, token: int) -> bool:
        with self._lock:
            return self._tokens.get(slot) == token

    def cancel(self, slot: str) -> None:
        """Invalidate whatever is in flight for `slot`."""
        self._issue(slot)

    def run(self, query: Query) -> SearchOutcome:
        report = self._registry.search_all_detailed(query)
        results = self._scorer.rank(
            query,
            report.candidates,
            allowed_providers=self._registry.enabled_providers(),
        )
        return SearchOutcome(query=query, results=results, warnings=report.warnings)

    def search(self, query: Query, *, slot: str = "default") -> Optional[SearchOutcome]:
        """Ranked search; None when a newer query for the same slot took over."""
        token = self._issue(slot)
        outcome = self.run(query)
        if not self.is_current(slot, token):
            log.info(f"[SEARCH] discarding stale results for {query.term()!r} (slot {slot!r})")
            return None
        return outcome
