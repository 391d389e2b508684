from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from tunetag import config
from tunetag import logger as logger_mod

from .batch import BatchResolver, BatchResult
from .errors import CoverArtError, ProviderError
from .models import Candidate, Query, RankedResult, TagFields, TagUpdate, TrackHandle
from .registry import ProviderRegistry
from .scheduler import SaveOutcome, SaveScheduler, SaveState
from .scoring import CandidateScorer
from .search import SearchCoordinator, SearchOutcome
from .session import EditorSession
from .settings import SettingsStore, UserSettings
from .tag.cover_art import make_thumbnail
from .tag.io.music_tag_io import MusicTagIO
from .tag.writer import ApplyResult, TagWriter

log = logger_mod.get_logger()

TrackRef = Union[TrackHandle, str]


@dataclass(frozen=True)
class EngineEvent:
    """Notification for the UI.

    kind is one of "save_state", "save_failed", "settings_saved".
    """

    kind: str
    track: Optional[TrackHandle] = None
    state: Optional[SaveState] = None
    outcome: Optional[SaveOutcome] = None
    settings: Optional[UserSettings] = None


EventListener = Callable[[EngineEvent], None]


class AutoTagger:
    """Single entry point for the editor UI.

    Wires settings, the provider registry, scoring, the editor session, the
    tag writer, the save scheduler and the batch resolver together.
    """

    def __init__(
        self,
        *,
        store: SettingsStore,
        registry: ProviderRegistry,
        tag_io: MusicTagIO,
        scheduler: Optional[SaveScheduler] = None,
        scorer: Optional[CandidateScorer] = None,
        min_acceptance_score: float = config.MIN_ACCEPTANCE_SCORE,
    ) -> None:
        self._store = store
        self._registry = registry
        self._io = tag_io
        self._scheduler = scheduler or SaveScheduler(tag_io.write)
        self._scorer = scorer or CandidateScorer()
        self._search = SearchCoordinator(registry, self._scorer)
        self._session = EditorSession(tag_io, self._scheduler)
        self._writer = TagWriter(self._scheduler, registry.fetch_cover_art)
        self._batch = BatchResolver(
            registry,
            self._writer,
            self._scheduler,
            scorer=self._scorer,
            min_acceptance_score=min_acceptance_score,
        )
        self._listeners: List[EventListener] = []
        self._listeners_lock = threading.Lock()

        self._scheduler.on_state_change(
            lambda track, state: self._publish(EngineEvent("save_state", track=track, state=state))
        )
        self._scheduler.on_failure(
            lambda outcome: self._publish(EngineEvent("save_failed", outcome=outcome))
        )
        self._store.on_saved(self._settings_saved)

    @classmethod
    def from_env(cls, *, settings_path: Optional[str] = None) -> "AutoTagger":
        """Build an AutoTagger from the settings file and environment."""
        store = SettingsStore(settings_path)
        settings = store.load()
        registry = ProviderRegistry(settings.provider_configs())
        for warning in registry.config_warnings:
            log.warning(f"⚠️ [SETTINGS] {warning.provider}: {warning.message}")
        return cls(store=store, registry=registry, tag_io=MusicTagIO())

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register `listener`; returns a function that unregisters it."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, event: EngineEvent) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    def _settings_saved(self, settings: UserSettings) -> None:
        self._registry.configure(settings.provider_configs())
        self._publish(EngineEvent("settings_saved", settings=settings))

    # ------------------------------------------------------------------
    # settings
    # ------------------------------------------------------------------

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def load_settings(self) -> UserSettings:
        return self._store.load()

    def save_settings(self, settings: UserSettings) -> None:
        """Persist settings; the registry picks them up for the next search."""
        self._store.save(settings)

    # ------------------------------------------------------------------
    # folder / tracks
    # ------------------------------------------------------------------

    @property
    def session(self) -> EditorSession:
        return self._session

    def open_folder(self, folder: str) -> List[TrackHandle]:
        return self._session.open_folder(folder)

    def close_folder(self, *, save_pending: bool = False) -> List[SaveOutcome]:
        return self._session.close_folder(save_pending=save_pending)

    def _track(self, ref: TrackRef) -> TrackHandle:
        if isinstance(ref, TrackHandle):
            return ref
        track = self._session.get(ref)
        if track is None:
            raise KeyError(f"{ref} is not open")
        return track

    def edit(
        self,
        track: TrackRef,
        *,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
    ) -> TagFields:
        return self._session.edit(self._track(track), title=title, artist=artist, album=album)

    def save_state(self, track: TrackRef) -> SaveState:
        return self._scheduler.state(self._track(track))

    # ------------------------------------------------------------------
    # search / apply
    # ------------------------------------------------------------------

    def search_all(self, query: Query) -> List[RankedResult]:
        return self._search.run(query).results

    def search(self, query: Query, *, slot: str = "default") -> Optional[SearchOutcome]:
        return self._search.search(query, slot=slot)

    def apply_candidate(self, track: TrackRef, candidate: Candidate) -> ApplyResult:
        return self._writer.apply(self._track(track), TagUpdate.from_candidate(candidate))

    def thumbnail(self, candidate: Candidate, *, size: int = 50) -> bytes:
        """PNG preview of a candidate's cover art."""
        if not candidate.cover_art_url:
            raise CoverArtError(f"{candidate.provider} candidate has no cover art")
        try:
            data = self._registry.fetch_cover_art(candidate)
        except ProviderError as e:
            raise CoverArtError(str(e)) from e
        return make_thumbnail(data, size)

    # ------------------------------------------------------------------
    # batch / saving
    # ------------------------------------------------------------------

    def batch_tag_folder(self, folder: Optional[str] = None) -> BatchResult:
        """Tag every track in `folder` (default: the open folder) from its name."""
        target = os.path.abspath(folder) if folder else self._session.folder
        if target is None:
            raise ValueError("no folder given and none is open")
        if target != self._session.folder:
            self._session.open_folder(target)
        return self._batch.resolve(os.path.basename(target), self._session.tracks())

    def preview_batch(self, folder: str) -> Optional[RankedResult]:
        """The match `batch_tag_folder` would apply, without touching any file."""
        return self._batch.preview(os.path.basename(os.path.abspath(folder)))

    def force_save_all(self) -> List[SaveOutcome]:
        return self._scheduler.save_all_now()

    def close(self) -> None:
        self._session.close_folder(save_pending=True)
        self._registry.close()
