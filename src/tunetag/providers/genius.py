"""Genius API provider (song search).

Requires a client access token from https://genius.com/api-clients.
Genius knows songs, not albums, so candidates carry an empty album.
"""

from __future__ import annotations

from typing import List, Optional

import requests

from tunetag import config
from tunetag import logger as logger_mod

from ..errors import Malformed, Unauthenticated
from ..models import GENIUS, Candidate, Query
from ._http import get_bytes, get_json
from .base import Throttle

log = logger_mod.get_logger()


class GeniusProvider:
    name = GENIUS
    BASE_URL = "https://api.genius.com"

    def __init__(
        self,
        access_token: str,
        *,
        timeout_s: float = config.HTTP_TIMEOUT_S,
        rate_limit_s: float = 0.2,
        session: Optional[requests.Session] = None,
    ):
        self.access_token = access_token
        self.timeout_s = float(timeout_s)
        self._session = session or requests.Session()
        self._throttle = Throttle(rate_limit_s)

    def authenticate(self) -> None:
        """Static bearer token; only checks that one is configured."""
        if not self.access_token:
            raise Unauthenticated(self.name, "access token missing")

    def search(self, query: Query) -> List[Candidate]:
        self.authenticate()
        self._throttle.wait()
        data = get_json(
            self._session,
            f"{self.BASE_URL}/search",
            provider=self.name,
            params={"q": query.term()},
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout_s,
        )

        try:
            hits = data["response"]["hits"]
            results = []
            for hit in hits:
                song = hit["result"]
                results.append(
                    Candidate(
                        title=song.get("title") or "",
                        artist=song.get("artist_names") or "",
                        album="",
                        provider=self.name,
                        cover_art_url=song.get("song_art_image_url") or None,
                    )
                )
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
