from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from tunetag import config
from tunetag import logger as logger_mod

from .helpers import collapse_whitespace, title_from_filename
from .models import ProviderWarning, Query, RankedResult, TagUpdate, TrackHandle
from .registry import ProviderRegistry
from .scheduler import SaveScheduler
from .scoring import CandidateScorer
from .tag.writer import TagWriter

log = logger_mod.get_logger()

APPLIED = "applied"
NO_MATCH = "no_match"
PARTIAL_FAILURE = "partial_failure"

_BRACKETED = re.compile(r"\[[^\]]*\]|\{[^}]*\}")
_QUALIFIER_PARENS = re.compile(
    r"\(\s*(?:\d{4}|[^)]*\b(?:edition|deluxe|remaster(?:ed)?|expanded|anniversary|"
    r"bonus|disc|disk|cd|vinyl|web|flac|mp3|\d+\s*kbps)\b[^)]*)\s*\)",
    re.IGNORECASE,
)
_TRAILING_DISC = re.compile(r"[\s,._-]*\b(?:cd|disc|disk)\s*\d+\s*$", re.IGNORECASE)
_LEADING_NUMBER = re.compile(r"^\s*\d+\s*[.)_-]\s+|^\s*\d+[.)]\s*")
_SEPARATORS = re.compile(r"\s+-\s+|\s*[–—]\s*")
_NUMERIC = re.compile(r"^[\d\s.]+$")


@dataclass(frozen=True)
class SeedQuery:
    """What a folder name tells us.

    `search` is sent to the providers once; every interpretation is scored
    against the same candidates.
    """

    search: Query
    interpretations: Tuple[Query, ...]

    @property
    def ambiguous(self) -> bool:
        return len(self.interpretations) > 1


def folder_name_parts(name: str) -> List[str]:
    s = name.replace("_-_", " - ").replace("_", " ")
    s = _BRACKETED.sub(" ", s)
    s = _QUALIFIER_PARENS.sub(" ", s)
    s = re.sub(r"\(\s*\)", " ", s)
    s = _TRAILING_DISC.sub("", collapse_whitespace(s))
    s = _LEADING_NUMBER.sub("", s, count=1)
    parts = []
    for part in _SEPARATORS.split(s):
        part = collapse_whitespace(part).strip(" -.,")
        if part and not _NUMERIC.match(part):
            parts.append(part)
    return parts


def seed_query_from_folder(name: str) -> Optional[SeedQuery]:
    """Infer an album query from a folder name.

    'Daft Punk - Discovery (2001) [FLAC]' -> artist 'Daft Punk', album 'Discovery'
    'Discovery'                           -> album 'Discovery' or artist 'Discovery'
    """
    parts = folder_name_parts(name)
    if not parts:
        return None
    if len(parts) == 1:
        only = parts[0]
        album_first = Query(album=only)
        return SeedQuery(search=album_first, interpretations=(album_first, Query(artist=only)))
    q = Query(artist=parts[0], album=" - ".join(parts[1:]))
    return SeedQuery(search=q, interpretations=(q,))


@dataclass(frozen=True)
class FileOutcome:
    path: str
    changed: Tuple[str, ...] = ()
    saved: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    status: str
    seed: Optional[SeedQuery] = None
    best: Optional[RankedResult] = None
    outcomes: List[FileOutcome] = field(default_factory=list)
    warnings: List[ProviderWarning] = field(default_factory=list)
    cover_art_error: Optional[str] = None

    @property
    def failed(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]


class BatchResolver:
    """Tag every track of a folder from the best album match for its name."""

    def __init__(
        self,
        registry: ProviderRegistry,
        writer: TagWriter,
        scheduler: SaveScheduler,
        *,
        scorer: Optional[CandidateScorer] = None,
        min_acceptance_score: float = config.MIN_ACCEPTANCE_SCORE,
    ):
        self._registry = registry
        self._writer = writer
        self._scheduler = scheduler
        self._scorer = scorer or CandidateScorer()
        self.min_acceptance_score = float(min_acceptance_score)

    def best_match(self, seed: SeedQuery) -> Tuple[Optional[RankedResult], List[ProviderWarning]]:
        report = self._registry.search_all_detailed(seed.search)
        allowed = self._registry.enabled_providers()
        best: Optional[RankedResult] = None
        for interpretation in seed.interpretations:
            result = self._scorer.best(interpretation, report.candidates, allowed_providers=allowed)
            if result is not None and (best is None or result.score > best.score):
                best = result
        return best, report.warnings

    def preview(self, folder_name: str) -> Optional[RankedResult]:
        """The match `resolve` would apply, or None."""
        seed = seed_query_from_folder(folder_name)
        if seed is None:
            return None
        best, _warnings = self.best_match(seed)
        if best is None or best.score < self.min_acceptance_score:
            return None
        return best

    def resolve(
        self, folder_name: str, tracks: Sequence[TrackHandle], *, persist: bool = True
    ) -> BatchResult:
        seed = seed_query_from_folder(folder_name)
        if seed is None:
            log.info(f"[BATCH] nothing to search for in folder name {folder_name!r}")
            return BatchResult(status=NO_MATCH)

        best, warnings = self.best_match(seed)
        if best is None or best.score < self.min_acceptance_score:
            score = "none" if best is None else f"{best.score:.2f}"
            log.info(
                f"[BATCH] no acceptable match for {seed.search.term()!r} "
                f"(best score {score}, need {self.min_acceptance_score:.2f})"
            )
            return BatchResult(status=NO_MATCH, seed=seed, best=best, warnings=warnings)

        match = best.candidate
        log.info(
            f"[BATCH] {folder_name!r} -> {match.artist} - {match.album} "
            f"({match.provider}, score {best.score:.2f})"
        )
        cover, cover_error = self._writer.resolve_cover(TagUpdate.from_candidate(match))

        changed = {}
        for track in tracks:
            with track.lock:
                title = track.fields.title or title_from_filename(track.path)
            update = TagUpdate(title=title, artist=match.artist, album=match.album)
            applied = self._writer.merge(track, update, cover=cover, cover_error=cover_error)
            changed[track.path] = tuple(applied.changed)

        saves = {}
        if persist:
            saves = {o.path: o for o in self._scheduler.save_all_now(tracks)}

        outcomes = []
        for track in tracks:
            save = saves.get(track.path)
            outcomes.append(
                FileOutcome(
                    path=track.path,
                    changed=changed[track.path],
                    saved=bool(save and save.saved),
                    error=save.error.reason if save is not None and save.error else None,
                )
            )

        result = BatchResult(
            status=APPLIED,
            seed=seed,
            best=best,
            outcomes=outcomes,
            warnings=warnings,
            cover_art_error=cover_error,
        )
        if result.failed:
            result.status = PARTIAL_FAILURE
            log.warning(f"⚠️ [BATCH] {len(result.failed)}/{len(outcomes)} files failed to save")
        return result
