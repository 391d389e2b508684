from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .helpers import normalize_for_compare
from .models import Candidate, Query, RankedResult, provider_rank

EXACT = 1.0
PARTIAL = 0.5
MISSING = 0.0
MISMATCH = -1.0


@dataclass(frozen=True)
class ScoringWeights:
    """Album outweighs artist outweighs title: batch tagging anchors on the album."""

    album: float = 0.5
    artist: float = 0.3
    title: float = 0.2


def field_similarity(wanted: str, offered: str) -> float:
    a = normalize_for_compare(wanted)
    b = normalize_for_compare(offered)
    if not a or not b:
        return MISSING
    if a == b:
        return EXACT
    if a in b or b in a:
        return PARTIAL
    return MISMATCH


class CandidateScorer:
    """Score candidates against a query and rank them deterministically."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def score(self, query: Query, candidate: Candidate) -> float:
        """Weighted similarity in [-1, 1], normalised by the fields the query has."""
        total = 0.0
        weight_sum = 0.0
        for name in ("album", "artist", "title"):
            wanted = getattr(query, name)
            if not wanted:
                continue
            weight = getattr(self.weights, name)
            weight_sum += weight
            total += weight * field_similarity(wanted, getattr(candidate, name))
        if weight_sum == 0:
            return 0.0
        return round(total / weight_sum, 6)

    @staticmethod
    def _order_key(result: RankedResult) -> Tuple:
        c = result.candidate
        return (
            -result.score,
            provider_rank(c.provider),
            -c.provider_confidence,
            normalize_for_compare(c.album),
            normalize_for_compare(c.artist),
            normalize_for_compare(c.title),
            c.album,
            c.artist,
            c.title,
            c.cover_art_url or "",
        )

    def rank(
        self,
        query: Query,
        candidates: Iterable[Candidate],
        *,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> List[RankedResult]:
        allowed = set(allowed_providers) if allowed_providers is not None else None
        ranked = [
            RankedResult(candidate=c, score=self.score(query, c))
            for c in candidates
            if allowed is None or c.provider in allowed
        ]
        ranked.sort(key=self._order_key)
        return ranked

    def best(
        self,
        query: Query,
        candidates: Iterable[Candidate],
        *,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> Optional[RankedResult]:
        ranked = self.rank(query, candidates, allowed_providers=allowed_providers)
        return ranked[0] if ranked else None
