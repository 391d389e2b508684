from __future__ import annotations

import dataclasses
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .helpers import collapse_whitespace

APPLE_MUSIC = "Apple Music"
SPOTIFY = "Spotify"
GENIUS = "Genius"
LASTFM = "Last.fm"

# Tie-break order when two candidates score the same.
PROVIDER_PRIORITY = (APPLE_MUSIC, SPOTIFY, GENIUS, LASTFM)


def provider_rank(provider: str) -> int:
    try:
        return PROVIDER_PRIORITY.index(provider)
    except ValueError:
        return len(PROVIDER_PRIORITY)


@dataclass(frozen=True)
class Query:
    """What to look for. At least one field must be populated."""

    title: str = ""
    artist: str = ""
    album: str = ""

    def __post_init__(self) -> None:
        for name in ("title", "artist", "album"):
            object.__setattr__(self, name, collapse_whitespace(getattr(self, name)))
        if not (self.title or self.artist or self.album):
            raise ValueError("Query needs at least one of title, artist, album")

    def term(self) -> str:
        """Free-text search string shared by every provider."""
        return " ".join(p for p in (self.artist, self.album, self.title) if p)

    def fields(self) -> Dict[str, str]:
        return {"title": self.title, "artist": self.artist, "album": self.album}


@dataclass(frozen=True)
class Candidate:
    title: str
    artist: str
    album: str
    provider: str
    cover_art_url: Optional[str] = None
    provider_confidence: float = 0.0


@dataclass(frozen=True)
class RankedResult:
    candidate: Candidate
    score: float


@dataclass(frozen=True)
class CoverArt:
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class TagFields:
    title: str = ""
    artist: str = ""
    album: str = ""
    cover_art: Optional[CoverArt] = None

    def copy(self) -> "TagFields":
        return dataclasses.replace(self)


@dataclass(frozen=True)
class TagUpdate:
    """Incoming values for the Tag Writer. Empty strings mean "leave as is"."""

    title: str = ""
    artist: str = ""
    album: str = ""
    cover_art: Optional[CoverArt] = None
    cover_source: Optional[Candidate] = None

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "TagUpdate":
        return cls(
            title=candidate.title,
            artist=candidate.artist,
            album=candidate.album,
            cover_source=candidate if candidate.cover_art_url else None,
        )


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    enabled: bool = False
    credentials: Mapping[str, str] = field(default_factory=dict)

    def credential(self, key: str) -> str:
        return collapse_whitespace(self.credentials.get(key, ""))


@dataclass(frozen=True)
class ProviderWarning:
    provider: str
    code: str
    message: str


@dataclass
class SearchReport:
    """Result of one fan-out: whatever arrived in time, plus what went wrong."""

    query: Query
    candidates: List[Candidate] = field(default_factory=list)
    warnings: List[ProviderWarning] = field(default_factory=list)


@dataclass(eq=False)
class TrackHandle:
    """One open audio file: its editable tags and what was last read from/written to disk."""

    path: str
    fields: TagFields = field(default_factory=TagFields)
    snapshot: TagFields = field(default_factory=TagFields)
    dirty: bool = False
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __post_init__(self) -> None:
        self.path = os.path.abspath(self.path)

    @property
    def name(self) -> str:
        return os.path.basename(self.path)
