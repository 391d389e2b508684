from __future__ import annotations

import threading
import time
from typing import List, Protocol, runtime_checkable

from ..models import Candidate, Query


@runtime_checkable
class ProviderClient(Protocol):
    """Capabilities every metadata provider offers.

    Implementations raise the `tunetag.errors.ProviderError` subclasses
    (Unauthenticated, RateLimited, Unreachable, Malformed) and nothing else
    for provider-side failures.
    """

    name: str

    def authenticate(self) -> None:
        raise NotImplementedError

    def search(self, query: Query) -> List[Candidate]:
        raise NotImplementedError

    def fetch_cover_art(self, candidate: Candidate) -> bytes:
        raise NotImplementedError


class Throttle:
    """Minimum spacing between requests, shared by concurrent callers."""

    def __init__(self, interval_s: float):
        self.interval_s = float(interval_s)
        self._last_call_ts = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            delta = time.monotonic() - self._last_call_ts
            if self._last_call_ts and delta < self.interval_s:
                time.sleep(self.interval_s - delta)
            self._last_call_ts = time.monotonic()
