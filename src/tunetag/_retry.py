from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from tunetag import logger as logger_mod

from .errors import RateLimited, Unreachable

log = logger_mod.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry/backoff settings for provider calls made outside a search fan-out."""

    max_retries: int = 3
    base_delay_s: float = 0.5
    max_delay_s: float = 10.0

    def __post_init__(self) -> None:
        # Clamp instead of raising to keep retry helpers low-friction.
        if self.max_retries < 1:
            object.__setattr__(self, "max_retries", 1)
        if self.base_delay_s <= 0:
            object.__setattr__(self, "base_delay_s", 0.1)
        if self.max_delay_s < self.base_delay_s:
            object.__setattr__(self, "max_delay_s", float(self.base_delay_s))


def _sleep_with_backoff(*, delay_s: float, max_delay_s: float, attempt: int, context: str) -> None:
    # exponential backoff with jitter (0.7x-1.3x)
    wait = min(max_delay_s, delay_s) * (0.7 + random.random() * 0.6)
    log.warning(f"⚠️ Retryable error while {context}; retrying in {wait:.1f}s (attempt {attempt})")
    time.sleep(wait)


def execute_with_retry(
    fn: Callable[[], T],
    *,
    context: str,
    retry: RetryConfig | None = None,
) -> T:
    """Call `fn`, backing off on RateLimited (honouring its interval) and Unreachable."""

    retry = retry or RetryConfig()
    delay = retry.base_delay_s

    for attempt in range(1, retry.max_retries + 1):
        try:
            return fn()
        except (RateLimited, Unreachable) as e:
            if attempt == retry.max_retries:
                log.error(f"❌ Giving up while {context} (attempt {attempt}/{retry.max_retries}): {e}")
                raise

            if isinstance(e, RateLimited):
                wait = min(retry.max_delay_s, e.retry_after_s)
                log.warning(f"⚠️ Rate limited while {context}; waiting {wait:.1f}s (attempt {attempt})")
                time.sleep(wait)
            else:
                _sleep_with_backoff(
                    delay_s=delay,
                    max_delay_s=retry.max_delay_s,
                    attempt=attempt,
                    context=context,
                )
                delay *= 2

    raise RuntimeError(f"Unknown error while {context}")
