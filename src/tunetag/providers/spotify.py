"""Spotify Web API provider.

Uses the client-credentials flow: no user login, only a client id/secret
from the Spotify Developer Dashboard. The token is cached in memory for its
lifetime and refreshed by spotipy when it expires.

API Documentation:
https://developer.spotify.com/documentation/web-api
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException, SpotifyOauthError
from spotipy.oauth2 import CacheHandler, SpotifyClientCredentials

from tunetag import config
from tunetag import logger as logger_mod

from ..errors import (
    Malformed,
    ProviderError,
    RateLimited,
    Unauthenticated,
    Unreachable,
)
from ..models import SPOTIFY, Candidate, Query
from ._http import get_bytes, retry_after_seconds
from .base import Throttle

log = logger_mod.get_logger()


class MemoryCacheHandler(CacheHandler):
    """Keep the access token in this process only; never touch disk."""

    def __init__(self):
        self._token_info: Optional[Dict[str, Any]] = None

    def get_cached_token(self):
        return self._token_info

    def save_token_to_cache(self, token_info):
        self._token_info = token_info

    def clear(self) -> None:
        self._token_info = None


def _quoted(value: str) -> str:
    return '"' + value.replace('"', "") + '"'


class SpotifyProvider:
    """Search tracks (or albums, when no title is known) on Spotify."""

    name = SPOTIFY

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        limit: int = config.SEARCH_LIMIT,
        timeout_s: float = config.HTTP_TIMEOUT_S,
        rate_limit_s: float = 0.5,
        client_factory: Optional[Callable[[], Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.limit = int(limit)
        self.timeout_s = float(timeout_s)
        self._cache = MemoryCacheHandler()
        self._client_factory = client_factory or self._default_client
        self._session = session or requests.Session()
        self._throttle = Throttle(rate_limit_s)
        self._lock = threading.Lock()
        self._client: Any = None
        self._auth_failed = False

    def _default_client(self) -> spotipy.Spotify:
        auth_manager = SpotifyClientCredentials(
            client_id=self.client_id,
            client_secret=self.client_secret,
            cache_handler=self._cache,
            requests_timeout=self.timeout_s,
        )
        # Rate limiting is surfaced to the registry instead of slept through.
        return spotipy.Spotify(
            auth_manager=auth_manager,
            requests_timeout=self.timeout_s,
            retries=0,
            status_retries=0,
        )

    def _latch_auth_failure(self, e: Exception) -> Unauthenticated:
        log.warning(f"[{self.name}] token exchange failed: {e}")
        self._auth_failed = True
        self._client = None
        self._cache.clear()
        return Unauthenticated(self.name, f"token exchange failed: {e}")

    def authenticate(self) -> None:
        """Exchange client id/secret for an access token (cached)."""
        with self._lock:
            if self._auth_failed:
                raise Unauthenticated(
                    self.name, "authentication failed earlier; update settings"
                )
            if not (self.client_id and self.client_secret):
                raise Unauthenticated(self.name, "client id/secret missing")
            if self._client is None:
                self._client = self._client_factory()

            auth_manager = getattr(self._client, "auth_manager", None)
            if auth_manager is None:
                return
            try:
                auth_manager.get_access_token(as_dict=False)
            except SpotifyOauthError as e:
                raise self._latch_auth_failure(e) from e
            except requests.exceptions.RequestException as e:
                raise Unreachable(self.name, f"token request failed: {e}") from e

    def _build_query(self, query: Query) -> str:
        parts = []
        if query.title:
            parts.append(f"track:{_quoted(query.title)}")
        if query.artist:
            parts.append(f"artist:{_quoted(query.artist)}")
        if query.album:
            parts.append(f"album:{_quoted(query.album)}")
        return " ".join(parts)

    def _translate(self, e: SpotifyException) -> ProviderError:
        status = e.http_status
        if status == 429:
            return RateLimited(
                self.name,
                "too many requests",
                retry_after_s=retry_after_seconds(
                    e.headers, config.DEFAULT_RETRY_AFTER_S
                ),
            )
        if status in (401, 403):
            return Unauthenticated(self.name, f"rejected with status {status}")
        if status is None or status < 0 or status >= 500:
            return Unreachable(self.name, f"server error {status}: {e}")
        return Malformed(self.name, f"request rejected with status {status}: {e}")

    def search(self, query: Query) -> List[Candidate]:
        kind = "track" if query.title else "album"
        q = self._build_query(query)

        data: Any = None
        for attempt in (1, 2):
            self.authenticate()
            self._throttle.wait()
            try:
                data = self._client.search(q=q, type=kind, limit=self.limit)
                break
            except SpotifyOauthError as e:
                raise self._latch_auth_failure(e) from e
            except SpotifyException as e:
                if e.http_status == 401 and attempt == 1:
                    # Token revoked or expired early: fetch a fresh one once.
                    log.info(f"[{self.name}] 401 during search; re-authenticating")
                    self._cache.clear()
                    continue
                raise self._translate(e) from e
            except requests.exceptions.RequestException as e:
                raise Unreachable(self.name, f"request failed: {e}") from e

        try:
            if kind == "track":
                items = data["tracks"]["items"]
                results = [self._from_track(item) for item in items]
            else:
                items = data["albums"]["items"]
                results = [self._from_album(item) for item in items]
        except (KeyError, TypeError, AttributeError) as e:
            raise Malformed(self.name, f"unexpected response shape: {e!r}") from e

        log.debug(f"[{self.name}] {len(results)} results for {q!r}")
        return results

    def _from_track(self, item: Dict[str, Any]) -> Candidate:
        artists = item.get("artists") or []
        album = item.get("album") or {}
        images = album.get("images") or []
        return Candidate(
            title=item.get("name") or "",
            artist=(artists[0].get("name") or "") if artists else "",
            album=album.get("name") or "",
            provider=self.name,
            cover_art_url=images[0].get("url") if images else None,
            provider_confidence=float(item.get("popularity") or 0) / 100.0,
        )

    def _from_album(self, item: Dict[str, Any]) -> Candidate:
        artists = item.get("artists") or []
        images = item.get("images") or []
        return Candidate(
            title="",
            artist=(artists[0].get("name") or "") if artists else "",
            album=item.get("name") or "",
            provider=self.name,
            cover_art_url=images[0].get("url") if images else None,
        )

    def fetch_cover_art(self, candidate: Candidate) -> bytes:
        self._throttle.wait()
        return get_bytes(
            self._session,
            candidate.cover_art_url,
            provider=self.name,
            timeout=self.timeout_s,
        )
