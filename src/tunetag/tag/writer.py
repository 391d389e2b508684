from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from tunetag import logger as logger_mod

from ..errors import CoverArtError, ProviderError
from ..models import Candidate, CoverArt, TagFields, TagUpdate, TrackHandle
from ..scheduler import SaveScheduler
from .cover_art import decode_cover_art

log = logger_mod.get_logger()

CoverFetcher = Callable[[Candidate], bytes]


@dataclass
class ApplyResult:
    fields: TagFields
    changed: List[str] = field(default_factory=list)
    cover_art_applied: bool = False
    cover_art_error: Optional[str] = None


def resolve_cover_art(
    update: TagUpdate, fetcher: Optional[CoverFetcher]
) -> Tuple[Optional[CoverArt], Optional[str]]:
    """Return (CoverArt or None, error text or None) for an update."""
    if update.cover_art is not None:
        return update.cover_art, None
    source = update.cover_source
    if source is None or not source.cover_art_url:
        return None, None
    if fetcher is None:
        return None, "no cover art fetcher configured"
    try:
        return decode_cover_art(fetcher(source)), None
    except (ProviderError, CoverArtError) as e:
        log.warning(f"⚠️ [TAG] cover art from {source.provider} unavailable: {e}")
        return None, str(e)


class TagWriter:
    """Merge incoming metadata into a track's in-memory tags.

    Empty incoming text never erases an existing value. Cover art is fetched
    and decoded before the track is touched; if that fails the text fields
    are still applied and the failure is reported in the result.
    """

    def __init__(self, scheduler: SaveScheduler, cover_fetcher: Optional[CoverFetcher] = None):
        self._scheduler = scheduler
        self._fetch = cover_fetcher

    def resolve_cover(self, update: TagUpdate) -> Tuple[Optional[CoverArt], Optional[str]]:
        return resolve_cover_art(update, self._fetch)

    def apply(self, track: TrackHandle, update: TagUpdate) -> ApplyResult:
        cover, cover_error = self.resolve_cover(update)
        return self.merge(track, update, cover=cover, cover_error=cover_error)

    def merge(
        self,
        track: TrackHandle,
        update: TagUpdate,
        *,
        cover: Optional[CoverArt] = None,
        cover_error: Optional[str] = None,
    ) -> ApplyResult:
        """Apply text fields plus already-resolved cover art to `track`."""
        changed: List[str] = []
        with track.lock:
            for name in ("title", "artist", "album"):
                incoming = getattr(update, name).strip()
                if incoming and incoming != getattr(track.fields, name):
                    setattr(track.fields, name, incoming)
                    changed.append(name)
            if cover is not None and cover != track.fields.cover_art:
                track.fields.cover_art = cover
                changed.append("cover_art")
            if changed:
                track.dirty = True
            fields = track.fields.copy()

        # outside track.lock: the scheduler takes its own lock first, then the track's
        if changed:
            log.debug(f"[TAG] {track.name}: updated {', '.join(changed)}")
            self._scheduler.notify_edit(track)

        return ApplyResult(
            fields=fields,
            changed=changed,
            cover_art_applied=cover is not None,
            cover_art_error=cover_error,
        )
