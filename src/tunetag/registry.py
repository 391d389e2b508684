from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

import requests

from tunetag import config
from tunetag import logger as logger_mod

from ._retry import RetryConfig, execute_with_retry
from .errors import InvalidCredential, ProviderError, RateLimited
from .models import (
    Candidate,
    ProviderConfig,
    ProviderWarning,
    Query,
    SearchReport,
    provider_rank,
)
from .providers import ProviderClient, build_provider
from .providers._http import get_bytes

log = logger_mod.get_logger()

ProviderFactory = Callable[[ProviderConfig], ProviderClient]


@dataclass(eq=False)
class _Lane:
    """Worker threads owned by one client, so a hung provider only ever holds its own.

    Calls never queue: once `slots` calls are running the lane is busy and the
    provider is skipped until one of them returns.
    """

    client: ProviderClient
    executor: ThreadPoolExecutor
    slots: int
    in_flight: Set[Future] = field(default_factory=set, repr=False)

    @classmethod
    def open(cls, name: str, client: ProviderClient, slots: int) -> "_Lane":
        slug = name.lower().replace(" ", "-").replace(".", "")
        executor = ThreadPoolExecutor(max_workers=slots, thread_name_prefix=f"tunetag-{slug}")
        return cls(client, executor, slots)

    @property
    def busy(self) -> bool:
        self.in_flight = {f for f in self.in_flight if not f.done()}
        return len(self.in_flight) >= self.slots

    def submit(self, query: Query) -> Future:
        future = self.executor.submit(self.client.search, query)
        self.in_flight.add(future)
        return future

    def close(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)


class ProviderRegistry:
    """The enabled provider clients, and one fan-out search over all of them.

    Clients are rebuilt from ProviderConfig whenever settings change. Every
    search works on a snapshot of the clients taken when it starts; results
    from a provider that was disabled or replaced while the search ran are
    dropped. Each client runs on its own lane with a fixed number of call
    slots; a provider whose slots are all held by earlier calls is skipped
    as busy.
    """

    def __init__(
        self,
        configs: Iterable[ProviderConfig] = (),
        *,
        factory: Optional[ProviderFactory] = None,
        timeout_s: float = config.PROVIDER_TIMEOUT_S,
        calls_per_provider: int = config.CALLS_PER_PROVIDER,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory or build_provider
        self.timeout_s = float(timeout_s)
        self._slots = max(1, int(calls_per_provider))
        self._clock = clock
        self._lock = threading.Lock()
        self._lanes: Dict[str, _Lane] = {}
        self._config_warnings: List[ProviderWarning] = []
        self._cooldown_until: Dict[str, float] = {}
        self._generation = 0
        self._session = requests.Session()
        self.configure(configs)

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------

    def configure(self, configs: Iterable[ProviderConfig]) -> None:
        """Rebuild the active client set (session start / settings saved)."""
        clients: Dict[str, ProviderClient] = {}
        warnings: List[ProviderWarning] = []
        for cfg in configs:
            if not cfg.enabled:
                continue
            try:
                clients[cfg.name] = self._factory(cfg)
            except InvalidCredential as e:
                log.warning(f"[REGISTRY] {cfg.name} disabled: {e}")
                warnings.append(ProviderWarning(cfg.name, "invalid_credential", str(e)))

        with self._lock:
            previous = self._lanes
            lanes: Dict[str, _Lane] = {}
            for name, client in clients.items():
                lane = previous.get(name)
                if lane is not None and lane.client is client:
                    lanes[name] = lane
                else:
                    lanes[name] = _Lane.open(name, client, self._slots)
            kept = {id(lane) for lane in lanes.values()}
            retired = [lane for lane in previous.values() if id(lane) not in kept]
            self._lanes = lanes
            self._config_warnings = warnings
            self._cooldown_until = {}
            self._generation += 1
            generation = self._generation

        for lane in retired:
            lane.close()

        log.info(
            f"[REGISTRY] generation {generation}: enabled providers = "
            f"{', '.join(self.enabled_providers()) or '(none)'}"
        )

    def enabled_providers(self) -> List[str]:
        with self._lock:
            names = list(self._lanes)
        return sorted(names, key=provider_rank)

    def client(self, name: str) -> Optional[ProviderClient]:
        with self._lock:
            lane = self._lanes.get(name)
        return lane.client if lane is not None else None

    @property
    def config_warnings(self) -> List[ProviderWarning]:
        with self._lock:
            return list(self._config_warnings)

    # ------------------------------------------------------------------
    # search
    # ------------------------------------------------------------------

    def _dispatch(self, query: Query) -> Tuple[Dict[Future, Tuple[str, ProviderClient]], List[ProviderWarning]]:
        """Start one call per available provider; report the ones skipped."""
        now = self._clock()
        futures: Dict[Future, Tuple[str, ProviderClient]] = {}
        skipped: List[ProviderWarning] = []
        with self._lock:
            for name, lane in self._lanes.items():
                until = self._cooldown_until.get(name, 0.0)
                if until > now:
                    skipped.append(
                        ProviderWarning(
                            name, "cooldown", f"rate limited for another {until - now:.1f}s"
                        )
                    )
                    continue
                if lane.busy:
                    log.warning(f"[SEARCH] {name} is still busy with an earlier request")
                    skipped.append(
                        ProviderWarning(name, "busy", "still answering an earlier request")
                    )
                    continue
                futures[lane.submit(query)] = (name, lane.client)
            skipped.extend(self._config_warnings)
        return futures, skipped

    def search_all_detailed(self, query: Query) -> SearchReport:
        """Fan out to every enabled provider and join within the timeout budget."""
        futures, warnings = self._dispatch(query)
        report = SearchReport(query=query, warnings=list(warnings))
        if not futures:
            log.info(f"[SEARCH] no provider available for {query.term()!r}")
            return report

        done, not_done = wait(futures, timeout=self.timeout_s)

        for future in not_done:
            name, _client = futures[future]
            # Late results are never merged; the lane stays busy until the call returns.
            log.warning(f"[SEARCH] {name} did not answer within {self.timeout_s:.1f}s")
            report.warnings.append(
                ProviderWarning(name, "timeout", f"no answer within {self.timeout_s:.1f}s")
            )

        arrived: Dict[str, List[Candidate]] = {}
        for future in done:
            name, _client = futures[future]
            try:
                arrived[name] = list(future.result())
            except RateLimited as e:
                self._start_cooldown(name, e.retry_after_s)
                report.warnings.append(ProviderWarning(name, e.code, str(e)))
            except ProviderError as e:
                log.warning(f"[SEARCH] {name} unavailable ({e.code}): {e}")
                report.warnings.append(ProviderWarning(name, e.code, str(e)))
            except Exception as e:
                log.error(f"[SEARCH] {name} failed unexpectedly: {e!r}")
                report.warnings.append(ProviderWarning(name, "malformed", repr(e)))

        # Providers disabled or rebuilt while the search ran are dropped.
        submitted = dict(futures.values())
        with self._lock:
            current = {name: lane.client for name, lane in self._lanes.items()}
        for name in sorted(arrived, key=provider_rank):
            if current.get(name) is not submitted[name]:
                log.info(f"[SEARCH] discarding results from reconfigured provider {name}")
                continue
            report.candidates.extend(arrived[name])
        report.warnings.sort(key=lambda w: provider_rank(w.provider))

        log.info(
            f"[SEARCH] {query.term()!r}: {len(report.candidates)} candidates, "
            f"{len(report.warnings)} warnings"
        )
        return report

    def search_all(self, query: Query) -> List[Candidate]:
        return self.search_all_detailed(query).candidates

    def _start_cooldown(self, name: str, seconds: float) -> None:
        log.warning(f"[SEARCH] {name} rate limited; backing off for {seconds:.1f}s")
        with self._lock:
            self._cooldown_until[name] = self._clock() + seconds

    # ------------------------------------------------------------------
    # cover art
    # ------------------------------------------------------------------

    def fetch_cover_art(self, candidate: Candidate, *, retry: RetryConfig | None = None) -> bytes:
        """Download a candidate's artwork through its provider, with backoff."""
        client = self.client(candidate.provider)
        if client is not None:
            fn = lambda: client.fetch_cover_art(candidate)  # noqa: E731
        else:
            fn = lambda: get_bytes(  # noqa: E731
                self._session,
                candidate.cover_art_url,
                provider=candidate.provider,
                timeout=config.HTTP_TIMEOUT_S,
            )
        return execute_with_retry(
            fn, context=f"fetching cover art from {candidate.provider}", retry=retry
        )

    def close(self) -> None:
        with self._lock:
            lanes = list(self._lanes.values())
            self._lanes = {}
        for lane in lanes:
            lane.close()
