import json
import os

import pytest

from tunetag import config
from tunetag._retry import RetryConfig, execute_with_retry
from tunetag.errors import Malformed, RateLimited, Unreachable
from tunetag.helpers import (
    collapse_whitespace,
    normalize_for_compare,
    safe_str,
    strip_track_number,
    title_from_filename,
)
from tunetag.models import APPLE_MUSIC, GENIUS, LASTFM, SPOTIFY, Query, TagUpdate
from tunetag.settings import SettingsStore, UserSettings


# ----------------------------------------------------------------------
# helpers
# ----------------------------------------------------------------------


def test_safe_str_and_whitespace():
    assert safe_str(None) == ""
    assert safe_str("None") == ""
    assert safe_str(3) == "3"
    assert collapse_whitespace("  Daft   Punk \n") == "Daft Punk"
    assert normalize_for_compare("ＤＡＦＴ  Punk") == "daft punk"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("01 - One More Time", "One More Time"),
        ("3. Digital Love", "Digital Love"),
        ("1-02 Aerodynamic", "Aerodynamic"),
        ("07_Superheroes", "Superheroes"),
        ("Voyager", "Voyager"),
        ("1999", "1999"),
        ("05 Voyager", "Voyager"),
        ("99 Problems", "99 Problems"),
        ("7 Nation Army", "7 Nation Army"),
        ("12 - 99 Problems", "99 Problems"),
    ],
)
def test_strip_track_number(name, expected):
    assert strip_track_number(name) == expected


def test_title_from_filename():
    assert title_from_filename("/music/01 - One More Time.mp3") == "One More Time"
    assert title_from_filename("aerodynamic_(live).flac") == "aerodynamic (live)"
    assert title_from_filename("7 Nation Army.mp3") == "7 Nation Army"
    assert title_from_filename("09_Lives.mp3") == "Lives"


def test_query_requires_a_field():
    with pytest.raises(ValueError):
        Query()
    with pytest.raises(ValueError):
        Query(title="   ")
    assert Query(title=" One  More Time ").title == "One More Time"


def test_tag_update_from_candidate_only_sets_cover_source_with_url(fakes):
    with_art = fakes.candidate(album="A", url="https://x/a.jpg")
    assert TagUpdate.from_candidate(with_art).cover_source == with_art
    assert TagUpdate.from_candidate(fakes.candidate(album="A")).cover_source is None


# ----------------------------------------------------------------------
# retry
# ----------------------------------------------------------------------


def test_execute_with_retry_honours_retry_after(monkeypatch):
    sleeps = []
    monkeypatch.setattr("tunetag._retry.time.sleep", sleeps.append)
    attempts = {"n": 0}

    def fn():
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise RateLimited(SPOTIFY, "429", retry_after_s=4)
        return "ok"

    assert execute_with_retry(fn, context="test") == "ok"
    assert sleeps == [4]


def test_execute_with_retry_gives_up(monkeypatch):
    monkeypatch.setattr("tunetag._retry.time.sleep", lambda _s: None)

    def fn():
        raise Unreachable(GENIUS, "down")

    with pytest.raises(Unreachable):
        execute_with_retry(fn, context="test", retry=RetryConfig(max_retries=2))


def test_execute_with_retry_does_not_retry_malformed(monkeypatch):
    monkeypatch.setattr("tunetag._retry.time.sleep", lambda _s: None)
    calls = []

    def fn():
        calls.append(1)
        raise Malformed(LASTFM, "bad")

    with pytest.raises(Malformed):
        execute_with_retry(fn, context="test")
    assert len(calls) == 1


def test_retry_config_clamps():
    cfg = RetryConfig(max_retries=0, base_delay_s=0, max_delay_s=-1)
    assert cfg.max_retries == 1
    assert cfg.base_delay_s == 0.1
    assert cfg.max_delay_s == 0.1


# ----------------------------------------------------------------------
# settings
# ----------------------------------------------------------------------


@pytest.fixture
def no_env_credentials(monkeypatch):
    for name in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "GENIUS_ACCESS_TOKEN", "LASTFM_API_KEY"):
        monkeypatch.setattr(config, name, "")


def test_missing_settings_file_gives_defaults(tmp_path, no_env_credentials):
    settings = SettingsStore(str(tmp_path / "config.json")).load()
    assert settings == UserSettings()
    assert settings.enable_apple_music is True
    assert settings.enable_spotify is False


def test_corrupt_settings_file_gives_defaults(tmp_path, no_env_credentials):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert SettingsStore(str(path)).load() == UserSettings()


def test_settings_round_trip_and_listeners(tmp_path, no_env_credentials):
    path = tmp_path / "nested" / "config.json"
    store = SettingsStore(str(path))
    seen = []
    store.on_saved(seen.append)
    settings = UserSettings(genius_token="tok_abcdefghijklmnop", enable_genius=True)

    store.save(settings)

    assert json.loads(path.read_text())["genius_token"] == "tok_abcdefghijklmnop"
    assert store.load() == settings
    assert seen == [settings]
    assert os.listdir(path.parent) == ["config.json"]


def test_unknown_keys_are_ignored_and_env_fills_blank_credentials(tmp_path, monkeypatch, no_env_credentials):
    monkeypatch.setattr(config, "LASTFM_API_KEY", "0123456789abcdef0123456789abcdef")
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"enable_lastfm": True, "theme": "dark"}))

    settings = SettingsStore(str(path)).load()

    assert settings.enable_lastfm is True
    assert settings.lastfm_api_key == ""
    lastfm = settings.provider_configs()[3]
    assert lastfm.credential("api_key") == "0123456789abcdef0123456789abcdef"


def test_env_credentials_are_never_written_back(tmp_path, monkeypatch, no_env_credentials):
    monkeypatch.setattr(config, "GENIUS_ACCESS_TOKEN", "env_token_abcdefghijkl")
    path = tmp_path / "config.json"
    store = SettingsStore(str(path))

    store.save(store.load())

    assert json.loads(path.read_text())["genius_token"] == ""
    assert store.load().provider_configs()[2].credential("access_token") == "env_token_abcdefghijkl"


@pytest.mark.parametrize(
    "raw, expected",
    [
        (True, True),
        (False, False),
        ("false", False),
        ("False", False),
        ("true", True),
        ("0", False),
        (1, True),
        ("maybe", True),
        (None, True),
    ],
)
def test_boolean_toggles_are_parsed_strictly(raw, expected):
    # enable_apple_music defaults to True; unparseable values keep the default
    assert UserSettings.from_dict({"enable_apple_music": raw}).enable_apple_music is expected


def test_provider_configs_cover_every_provider():
    configs = UserSettings(
        spotify_id="id", spotify_secret="secret", enable_spotify=True
    ).provider_configs()

    assert [c.name for c in configs] == [APPLE_MUSIC, SPOTIFY, GENIUS, LASTFM]
    spotify = configs[1]
    assert spotify.enabled is True
    assert spotify.credential("client_id") == "id"
    assert spotify.credential("client_secret") == "secret"
