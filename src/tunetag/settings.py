from __future__ import annotations

import dataclasses
import json
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from tunetag import config
from tunetag import logger as logger_mod

from .models import APPLE_MUSIC, GENIUS, LASTFM, SPOTIFY, ProviderConfig

log = logger_mod.get_logger()

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


def _parse_bool(key: str, value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    log.warning(f"[SETTINGS] {key}={value!r} is not a boolean; keeping {default}")
    return default


@dataclass(frozen=True)
class UserSettings:
    """Provider toggles and credentials as persisted in the settings file."""

    spotify_id: str = ""
    spotify_secret: str = ""
    genius_token: str = ""
    lastfm_api_key: str = ""
    enable_apple_music: bool = True
    enable_spotify: bool = False
    enable_genius: bool = False
    enable_lastfm: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "UserSettings":
        defaults = cls()
        known = {f.name: f for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in data.items():
            f = known.get(key)
            if f is None:
                continue
            if f.type in ("bool", bool):
                kwargs[key] = _parse_bool(key, value, getattr(defaults, key))
            else:
                kwargs[key] = "" if value is None else str(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)

    def with_env_defaults(self) -> "UserSettings":
        """Fill blank credentials from environment variables.

        Only used to build provider configs; the result is never persisted.
        """
        return dataclasses.replace(
            self,
            spotify_id=self.spotify_id or config.SPOTIFY_CLIENT_ID,
            spotify_secret=self.spotify_secret or config.SPOTIFY_CLIENT_SECRET,
            genius_token=self.genius_token or config.GENIUS_ACCESS_TOKEN,
            lastfm_api_key=self.lastfm_api_key or config.LASTFM_API_KEY,
        )

    def provider_configs(self) -> List[ProviderConfig]:
        s = self.with_env_defaults()
        return [
            ProviderConfig(APPLE_MUSIC, s.enable_apple_music),
            ProviderConfig(
                SPOTIFY,
                s.enable_spotify,
                {"client_id": s.spotify_id, "client_secret": s.spotify_secret},
            ),
            ProviderConfig(GENIUS, s.enable_genius, {"access_token": s.genius_token}),
            ProviderConfig(LASTFM, s.enable_lastfm, {"api_key": s.lastfm_api_key}),
        ]


SettingsListener = Callable[[UserSettings], None]


class SettingsStore:
    """Load/save UserSettings as JSON and tell listeners about saves."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or config.SETTINGS_PATH
        self._listeners: List[SettingsListener] = []
        self._lock = threading.Lock()

    def load(self) -> UserSettings:
        """Settings exactly as stored; environment credentials are not merged in."""
        settings = UserSettings()
        if os.path.exists(self.path):
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    settings = UserSettings.from_dict(data)
                else:
                    log.warning(f"[SETTINGS] {self.path} is not a JSON object; using defaults")
            except (OSError, ValueError) as e:
                log.warning(f"[SETTINGS] Failed to read {self.path} ({e}); using defaults")
        return settings

    def save(self, settings: UserSettings) -> None:
        """Write atomically, then notify listeners."""
        with self._lock:
            folder = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(folder, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".settings-", suffix=".json", dir=folder)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
            listeners = list(self._listeners)

        log.info(f"✅ Settings saved to {self.path}")
        for listener in listeners:
            listener(settings)

    def on_saved(self, listener: SettingsListener) -> None:
        with self._lock:
            self._listeners.append(listener)
