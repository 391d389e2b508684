from __future__ import annotations

from typing import Optional


class TunetagError(RuntimeError):
    """Base error for tunetag."""


class ProviderError(TunetagError):
    """A provider could not serve a request."""

    code = "provider_error"

    def __init__(self, provider: str, message: str = ""):
        super().__init__(f"{provider}: {message}" if message else provider)
        self.provider = provider
        self.message = message


class Unauthenticated(ProviderError):
    """Missing or rejected credentials."""

    code = "unauthenticated"


class RateLimited(ProviderError):
    """Provider-imposed cooldown; retry after `retry_after_s`."""

    code = "rate_limited"

    def __init__(self, provider: str, message: str = "", *, retry_after_s: float):
        super().__init__(provider, message)
        self.retry_after_s = float(retry_after_s)


class Unreachable(ProviderError):
    """Network failure, timeout or server error."""

    code = "unreachable"


class Malformed(ProviderError):
    """Response could not be parsed into candidates."""

    code = "malformed"


class InvalidCredential(TunetagError):
    """Settings hold a credential that can never work (wrong shape)."""

    def __init__(self, provider: str, field: str, reason: str):
        super().__init__(f"{provider}: invalid {field} ({reason})")
        self.provider = provider
        self.field = field
        self.reason = reason


class SaveFailed(TunetagError):
    """Writing tags to disk failed; the file on disk is unchanged."""

    def __init__(self, path: str, reason: str, *, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to save {path}: {reason}")
        self.path = path
        self.reason = reason
        self.cause = cause


class CoverArtError(TunetagError):
    """Cover art could not be fetched or decoded."""
