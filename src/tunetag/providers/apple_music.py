"""Apple Music (iTunes Search API) provider.

Free, no authentication required.

API Documentation:
https://developer.apple.com/library/archive/documentation/AudioVideo/Conceptual/iTuneSearchAPI/

Rate Limits: ~20 requests per minute recommended
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import requests

from tunetag import config
from tunetag import logger as logger_mod

from ..errors import Malformed
from ..models import APPLE_MUSIC, Candidate, Query
from ._http import get_bytes, get_json
from .base import Throttle

log = logger_mod.get_logger()


class AppleMusicProvider:
    """Search songs (or albums, when no title is known) on the iTunes store.

    There is no credential to reject, so 401 is just a bad request and 403 is
    how the store throttles a client.
    """

    name = APPLE_MUSIC
    BASE_URL = "https://itunes.apple.com"
    AUTH_STATUSES: Tuple[int, ...] = ()
    THROTTLE_STATUSES: Tuple[int, ...] = (403, 429)

    def __init__(
        self,
        *,
        country: str = config.APPLE_MUSIC_COUNTRY,
        limit: int = config.SEARCH_LIMIT,
        timeout_s: float = config.HTTP_TIMEOUT_S,
        rate_limit_s: float = 0.05,
        session: Optional[requests.Session] = None,
    ):
        self.country = country
        self.limit = int(limit)
        self.timeout_s = float(timeout_s)
        self._session = session or requests.Session()
        self._throttle = Throttle(rate_limit_s)

    def authenticate(self) -> None:
        """No credential needed."""

    def search(self, query: Query) -> List[Candidate]:
        entity = "song" if query.title else "album"
        params = {
            "term": query.term(),
            "media": "music",
            "entity": entity,
            "country": self.country,
            "limit": self.limit,
        }
        self._throttle.wait()
        data = get_json(
            self._session,
            f"{self.BASE_URL}/search",
            provider=self.name,
            params=params,
            timeout=self.timeout_s,
            auth_statuses=self.AUTH_STATUSES,
            throttle_statuses=self.THROTTLE_STATUSES,
        )

        try:
            items = data.get("results", [])
            results = []
            for item in items:
                results.append(
                    Candidate(
                        title=(item.get("trackName") or "") if entity == "song" else "",
                        artist=item.get("artistName") or "",
                        album=item.get("collectionName") or "",
                        provider=self.name,
                        cover_art_url=self._large_artwork(item.get("artworkUrl100")),
                    )
                )
        except (AttributeError, TypeError) as e:
            raise Malformed(self.name, f"unexpected response shape: {e}") from e

        log.debug(f"[{self.name}] {len(results)} results for {query.term()!r}")
        return results

    def fetch_cover_art(self, candidate: Candidate) -> bytes:
        self._throttle.wait()
        return get_bytes(
            self._session,
            candidate.cover_art_url,
            provider=self.name,
            timeout=self.timeout_s,
            auth_statuses=self.AUTH_STATUSES,
            throttle_statuses=self.THROTTLE_STATUSES,
        )

    @staticmethod
    def _large_artwork(url: Optional[str], size: int = 600) -> Optional[str]:
        """iTunes returns 100x100 thumbnails but serves larger sizes on request."""
        if url:
            return url.replace("100x100", f"{size}x{size}")
        return None
