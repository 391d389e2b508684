"""Last.fm API provider.

track.search when a title is known, album.search otherwise.
Last.fm reports most errors in-band (HTTP 200 with an "error" code).

API Documentation:
https://www.last.fm/api
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from tunetag import config
from tunetag import logger as logger_mod

from ..errors import Malformed, RateLimited, Unauthenticated, Unreachable
from ..models import LASTFM, Candidate, Query
from ._http import get_bytes, get_json
from .base import Throttle

log = logger_mod.get_logger()

# https://www.last.fm/api/errorcodes
_AUTH_ERRORS = {4, 9, 10, 26}
_RATE_LIMIT_ERRORS = {29}
_TRANSIENT_ERRORS = {8, 11, 16}


def _best_image(images: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    for size in ("extralarge", "large"):
        for img in images or []:
            url = img.get("#text") or ""
            if img.get("size") == size and url:
                return url
    return None


class LastFmProvider:
    name = LASTFM
    BASE_URL = "http://ws.audioscrobbler.com/2.0/"

    def __init__(
        self,
        api_key: str,
        *,
        limit: int = config.SEARCH_LIMIT,
        timeout_s: float = config.HTTP_TIMEOUT_S,
        rate_limit_s: float = 0.2,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.limit = int(limit)
        self.timeout_s = float(timeout_s)
        self._session = session or requests.Session()
        self._throttle = Throttle(rate_limit_s)

    def authenticate(self) -> None:
        if not self.api_key:
            raise Unauthenticated(self.name, "API key missing")

    def _check_error(self, data: Any) -> None:
        if not isinstance(data, dict) or "error" not in data:
            return
        try:
            code = int(data.get("error"))
        except (TypeError, ValueError):
            code = -1
        message = str(data.get("message") or "")
        if code in _AUTH_ERRORS:
            raise Unauthenticated(self.name, f"error {code}: {message}")
        if code in _RATE_LIMIT_ERRORS:
            raise RateLimited(
                self.name,
                f"error {code}: {message}",
                retry_after_s=config.DEFAULT_RETRY_AFTER_S,
            )
        if code in _TRANSIENT_ERRORS:
            raise Unreachable(self.name, f"error {code}: {message}")
        raise Malformed(self.name, f"error {code}: {message}")

    def search(self, query: Query) -> List[Candidate]:
        self.authenticate()
        params: Dict[str, Any] = {
            "api_key": self.api_key,
            "format": "json",
            "limit": self.limit,
        }
        if query.title:
            params["method"] = "track.search"
            params["track"] = query.title
            if query.artist:
                params["artist"] = query.artist
        else:
            params["method"] = "album.search"
            params["album"] = query.album or query.artist

        self._throttle.wait()
        data = get_json(
            self._session,
            self.BASE_URL,
            provider=self.name,
            params=params,
            timeout=self.timeout_s,
        )
        self._check_error(data)

        try:
            if query.title:
                tracks = data["results"]["trackmatches"]["track"]
                results = [
                    Candidate(
                        title=t.get("name") or "",
                        artist=t.get("artist") or "",
                        album="",
                        provider=self.name,
                        cover_art_url=_best_image(t.get("image")),
                    )
                    for t in tracks
                ]
            else:
                albums = data["results"]["albummatches"]["album"]
                results = [
                    Candidate(
                        title="",
                        artist=a.get("artist") or "",
                        album=a.get("name") or "",
                        provider=self.name,
                        cover_art_url=_best_image(a.get("image")),
                    )
                    for a in albums
                ]
        except (KeyError, TypeError, AttributeError) as e:
            raise Malformed(self.name, f"unexpected response shape: {e!r}") from e

        log.debug(f"[{self.name}] {len(results)} results for {query.term()!r}")
        return results

    def fetch_cover_art(self, candidate: Candidate) -> bytes:
        self._throttle.wait()
        return get_bytes(
            self._session,
            candidate.cover_art_url,
            provider=self.name,
            timeout=self.timeout_s,
        )
