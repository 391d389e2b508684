from __future__ import annotations

import re
from typing import Optional

import requests

from ..errors import InvalidCredential, TunetagError
from ..models import APPLE_MUSIC, GENIUS, LASTFM, SPOTIFY, ProviderConfig
from .apple_music import AppleMusicProvider
from .base import ProviderClient
from .genius import GeniusProvider
from .lastfm import LastFmProvider
from .spotify import SpotifyProvider

_HEX32 = re.compile(r"^[0-9a-fA-F]{32}$")
_TOKEN = re.compile(r"^[A-Za-z0-9_\-]{16,}$")


def _check(provider: str, field: str, value: str, pattern: re.Pattern, shape: str) -> None:
    # Blank credentials are "not configured yet" (Unauthenticated at search time),
    # not malformed ones.
    if value and not pattern.match(value):
        raise InvalidCredential(provider, field, f"expected {shape}")


def validate_credentials(cfg: ProviderConfig) -> None:
    """Raise InvalidCredential when a configured credential has the wrong shape."""

    if cfg.name == SPOTIFY:
        _check(SPOTIFY, "client_id", cfg.credential("client_id"), _HEX32, "32 hex characters")
        _check(
            SPOTIFY,
            "client_secret",
            cfg.credential("client_secret"),
            _HEX32,
            "32 hex characters",
        )
    elif cfg.name == GENIUS:
        _check(
            GENIUS,
            "access_token",
            cfg.credential("access_token"),
            _TOKEN,
            "a token of letters, digits, '-' or '_'",
        )
    elif cfg.name == LASTFM:
        _check(LASTFM, "api_key", cfg.credential("api_key"), _HEX32, "32 hex characters")


def build_provider(
    cfg: ProviderConfig, *, session: Optional[requests.Session] = None
) -> ProviderClient:
    """Factory for provider clients, selected by configuration.

    Providers:
    - Apple Music (no credentials)
    - Spotify (client_id, client_secret)
    - Genius (access_token)
    - Last.fm (api_key)
    """

    validate_credentials(cfg)

    if cfg.name == APPLE_MUSIC:
        return AppleMusicProvider(session=session)
    if cfg.name == SPOTIFY:
        return SpotifyProvider(
            cfg.credential("client_id"),
            cfg.credential("client_secret"),
            session=session,
        )
    if cfg.name == GENIUS:
        return GeniusProvider(cfg.credential("access_token"), session=session)
    if cfg.name == LASTFM:
        return LastFmProvider(cfg.credential("api_key"), session=session)

    raise TunetagError(f"Unknown metadata provider: {cfg.name}")
