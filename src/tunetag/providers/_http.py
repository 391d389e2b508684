from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

import requests

from tunetag import config
from tunetag import logger as logger_mod

from ..errors import Malformed, RateLimited, Unauthenticated, Unreachable

log = logger_mod.get_logger()


def retry_after_seconds(headers: Optional[Mapping[str, str]], default: float) -> float:
    try:
        value = float((headers or {}).get("Retry-After", default))
    except (TypeError, ValueError):
        value = default
    return max(1.0, value)


AUTH_STATUSES = (401, 403)
THROTTLE_STATUSES = (429,)


def _send(
    session: requests.Session,
    url: str,
    *,
    provider: str,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float,
    auth_statuses: Tuple[int, ...] = AUTH_STATUSES,
    throttle_statuses: Tuple[int, ...] = THROTTLE_STATUSES,
) -> requests.Response:
    try:
        resp = session.get(url, params=params, headers=headers, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise Unreachable(provider, f"request failed: {e}") from e

    status = resp.status_code
    if status in auth_statuses:
        raise Unauthenticated(provider, f"rejected with status {status}")
    if status in throttle_statuses:
        raise RateLimited(
            provider,
            f"throttled with status {status}",
            retry_after_s=retry_after_seconds(
                resp.headers, config.DEFAULT_RETRY_AFTER_S
            ),
        )
    if status >= 500:
        raise Unreachable(provider, f"server error {status}")
    if status >= 400:
        raise Malformed(provider, f"request rejected with status {status}")
    return resp


def get_json(
    session: requests.Session,
    url: str,
    *,
    provider: str,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float,
    auth_statuses: Tuple[int, ...] = AUTH_STATUSES,
    throttle_statuses: Tuple[int, ...] = THROTTLE_STATUSES,
) -> Any:
    resp = _send(
        session,
        url,
        provider=provider,
        params=params,
        headers=headers,
        timeout=timeout,
        auth_statuses=auth_statuses,
        throttle_statuses=throttle_statuses,
    )
    try:
        return resp.json()
    except ValueError as e:
        log.warning(f"[{provider}] unparseable response: {e}")
        raise Malformed(provider, f"invalid JSON: {e}") from e


def get_bytes(
    session: requests.Session,
    url: Optional[str],
    *,
    provider: str,
    timeout: float,
    auth_statuses: Tuple[int, ...] = AUTH_STATUSES,
    throttle_statuses: Tuple[int, ...] = THROTTLE_STATUSES,
) -> bytes:
    if not url:
        raise Malformed(provider, "candidate has no cover art URL")
    resp = _send(
        session,
        url,
        provider=provider,
        timeout=timeout,
        auth_statuses=auth_statuses,
        throttle_statuses=throttle_statuses,
    )
    data = resp.content
    if not data:
        raise Malformed(provider, "empty cover art response")
    return data
