from __future__ import annotations

import os
import threading
from typing import Dict, List, Optional

import mutagen

from tunetag import logger as logger_mod

from .models import TagFields, TrackHandle
from .scheduler import SaveOutcome, SaveScheduler
from .tag.io.music_tag_io import MusicTagIO

log = logger_mod.get_logger()


class EditorSession:
    """The folder currently open for editing and its TrackHandles."""

    def __init__(self, tag_io: MusicTagIO, scheduler: SaveScheduler):
        self._io = tag_io
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._folder: Optional[str] = None
        self._tracks: Dict[str, TrackHandle] = {}

    @property
    def folder(self) -> Optional[str]:
        return self._folder

    def tracks(self) -> List[TrackHandle]:
        with self._lock:
            return [self._tracks[p] for p in sorted(self._tracks)]

    def get(self, path: str) -> Optional[TrackHandle]:
        with self._lock:
            return self._tracks.get(os.path.abspath(path))

    def load_track(self, path: str) -> TrackHandle:
        try:
            fields = self._io.read(path)
        except (mutagen.MutagenError, OSError, ValueError):
            # unreadable tags start out empty; the file itself is left alone
            fields = TagFields()
        return TrackHandle(path=path, fields=fields, snapshot=fields.copy())

    def open_folder(self, folder: str, *, save_pending: bool = True) -> List[TrackHandle]:
        """Switch to `folder`, releasing whatever was open before."""
        self.close_folder(save_pending=save_pending)
        folder = os.path.abspath(folder)
        handles = [self.load_track(p) for p in self._io.list_files(folder)]
        with self._lock:
            self._folder = folder
            self._tracks = {h.path: h for h in handles}
        log.info(f"[SESSION] opened {folder} ({len(handles)} tracks)")
        return handles

    def close_folder(self, *, save_pending: bool = False) -> List[SaveOutcome]:
        with self._lock:
            tracks = list(self._tracks.values())
            folder = self._folder
            self._tracks = {}
            self._folder = None
        if not tracks:
            return []
        outcomes = self._scheduler.save_all_now(tracks) if save_pending else []
        self._scheduler.release(tracks)
        log.info(f"[SESSION] closed {folder}")
        return outcomes

    def edit(
        self,
        track: TrackHandle,
        *,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
    ) -> TagFields:
        """Direct user edit. Unlike TagUpdate merging, an empty string clears a field."""
        changed = False
        with track.lock:
            for name, value in (("title", title), ("artist", artist), ("album", album)):
                if value is None:
                    continue
                if value != getattr(track.fields, name):
                    setattr(track.fields, name, value)
                    changed = True
            if changed:
                track.dirty = True
            fields = track.fields.copy()
        if changed:
            self._scheduler.notify_edit(track)
        return fields

    def revert(self, track: TrackHandle) -> TagFields:
        """Reset a track to its last-known-good snapshot."""
        with track.lock:
            track.fields = track.snapshot.copy()
            track.dirty = False
            fields = track.fields.copy()
        return fields
