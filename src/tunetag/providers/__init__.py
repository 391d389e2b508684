"""Metadata provider clients.

Each provider wraps one external search API behind the same small set of
capabilities (see `ProviderClient`). Provider-specific SDKs and wire formats
stay inside their own module.

Public API:
- ProviderClient
- build_provider
"""

from .apple_music import AppleMusicProvider
from .base import ProviderClient, Throttle
from .factory import build_provider, validate_credentials
from .genius import GeniusProvider
from .lastfm import LastFmProvider
from .spotify import SpotifyProvider

__all__ = [
    "ProviderClient",
    "Throttle",
    "build_provider",
    "validate_credentials",
    "AppleMusicProvider",
    "SpotifyProvider",
    "GeniusProvider",
    "LastFmProvider",
]
