import os

from dotenv import load_dotenv

# Load from .env if it exists (useful for local development)
load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


LOGGING_LEVEL = os.getenv("LOGGING_LEVEL", "INFO").upper()

# Settings file (provider toggles + credentials)
SETTINGS_PATH = os.getenv("TUNETAG_SETTINGS_PATH", "config.json")

# Credential fallbacks used when the settings file leaves them blank
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
GENIUS_ACCESS_TOKEN = os.getenv("GENIUS_ACCESS_TOKEN", "")
LASTFM_API_KEY = os.getenv("LASTFM_API_KEY", "")

# --- Search ---
PROVIDER_TIMEOUT_S = _float_env("TUNETAG_PROVIDER_TIMEOUT_S", 5.0)
# A single request never outlives the fan-out budget
HTTP_TIMEOUT_S = min(_float_env("TUNETAG_HTTP_TIMEOUT_S", 5.0), PROVIDER_TIMEOUT_S)
DEFAULT_RETRY_AFTER_S = _float_env("TUNETAG_DEFAULT_RETRY_AFTER_S", 5.0)
SEARCH_LIMIT = _int_env("TUNETAG_SEARCH_LIMIT", 10)
# Concurrent calls allowed per provider before it is skipped as busy
CALLS_PER_PROVIDER = _int_env("TUNETAG_CALLS_PER_PROVIDER", 2)
APPLE_MUSIC_COUNTRY = os.getenv("TUNETAG_APPLE_MUSIC_COUNTRY", "us")

# --- Batch tagging ---
MIN_ACCEPTANCE_SCORE = _float_env("TUNETAG_MIN_ACCEPTANCE_SCORE", 0.6)

# --- Saving ---
DEBOUNCE_S = _float_env("TUNETAG_DEBOUNCE_S", 1.0)

AUDIO_EXTENSIONS = (".mp3", ".flac", ".ogg", ".m4a", ".wav")
