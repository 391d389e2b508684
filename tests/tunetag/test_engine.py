from io import BytesIO

import pytest
from PIL import Image

from tunetag import cli
from tunetag.batch import APPLIED
from tunetag.engine import AutoTagger
from tunetag.errors import CoverArtError
from tunetag.models import APPLE_MUSIC, GENIUS, Query
from tunetag.registry import ProviderRegistry
from tunetag.scheduler import SaveScheduler, SaveState
from tunetag.settings import SettingsStore, UserSettings
from tunetag.tag import MusicTagIO


@pytest.fixture
def tagger(tmp_path, fakes, timers):
    png = fakes.png_bytes(size=(300, 300))
    providers = {
        APPLE_MUSIC: fakes.Provider(
            APPLE_MUSIC,
            [fakes.candidate(title="Voyager", artist="Daft Punk", album="Discovery", url="https://art/a.jpg")],
            cover=png,
        ),
        GENIUS: fakes.Provider(GENIUS, [fakes.candidate(title="Voyager", artist="Daft Punk", provider=GENIUS)]),
    }
    store = SettingsStore(str(tmp_path / "config.json"))
    registry = ProviderRegistry(
        UserSettings().provider_configs(), factory=lambda cfg: providers[cfg.name]
    )
    io = MusicTagIO(loader=fakes.TagLoader())
    engine = AutoTagger(
        store=store,
        registry=registry,
        tag_io=io,
        scheduler=SaveScheduler(io.write, timer_factory=timers),
    )
    engine.providers = providers
    yield engine
    engine.close()


def test_search_all_only_uses_enabled_providers(tagger):
    results = tagger.search_all(Query(title="Voyager", artist="Daft Punk"))

    assert [r.candidate.provider for r in results] == [APPLE_MUSIC]
    assert tagger.providers[GENIUS].searches == []


def test_saving_settings_reconfigures_providers(tagger):
    events = []
    tagger.subscribe(events.append)

    tagger.save_settings(UserSettings(enable_genius=True, genius_token="tok_abcdefghijklmnop"))
    results = tagger.search_all(Query(title="Voyager", artist="Daft Punk"))

    assert {r.candidate.provider for r in results} == {APPLE_MUSIC, GENIUS}
    assert [e.kind for e in events] == ["settings_saved"]
    assert tagger.load_settings().enable_genius is True


def test_apply_candidate_then_debounced_save(tmp_path, tagger, fakes, timers):
    folder = tmp_path / "music"
    folder.mkdir()
    path = fakes.write_track(folder, "05 Voyager.mp3")
    (track,) = tagger.open_folder(str(folder))
    events = []
    unsubscribe = tagger.subscribe(events.append)

    best = tagger.search_all(Query(title="Voyager"))[0]
    result = tagger.apply_candidate(str(path), best.candidate)

    assert result.cover_art_applied
    assert tagger.save_state(track) is SaveState.SCHEDULED
    timers.fire_all()
    assert tagger.save_state(track) is SaveState.CLEAN
    assert fakes.read_tags(path)["album"] == "Discovery"
    assert [e.state for e in events if e.kind == "save_state"] == [
        SaveState.DIRTY,
        SaveState.SCHEDULED,
        SaveState.SAVING,
        SaveState.CLEAN,
    ]

    unsubscribe()
    tagger.edit(track, title="Voyager (Edit)")
    assert len([e for e in events if e.kind == "save_state"]) == 4


def test_save_failure_is_published(tmp_path, tagger, fakes):
    folder = tmp_path / "music"
    folder.mkdir()
    fakes.write_track(folder, "a.mp3", {"fail_save": True})
    (track,) = tagger.open_folder(str(folder))
    events = []
    tagger.subscribe(events.append)

    tagger.edit(track, title="x")
    outcomes = tagger.force_save_all()

    assert [o.saved for o in outcomes] == [False]
    failed = [e for e in events if e.kind == "save_failed"]
    assert failed and failed[0].outcome.path == track.path
    assert tagger.save_state(track) is SaveState.DIRTY


def test_batch_tag_folder_opens_and_tags(tmp_path, tagger, fakes):
    folder = tmp_path / "Daft Punk - Discovery (2001)"
    folder.mkdir()
    path = fakes.write_track(folder, "09 - Voyager.mp3")

    result = tagger.batch_tag_folder(str(folder))

    assert result.status == APPLIED
    assert tagger.session.folder == str(folder)
    assert fakes.read_tags(path)["artist"] == "Daft Punk"
    assert fakes.read_tags(path)["tracktitle"] == "Voyager"


def test_thumbnail(tagger, fakes):
    thumb = tagger.thumbnail(fakes.candidate(album="Discovery", url="https://art/a.jpg"), size=40)
    with Image.open(BytesIO(thumb)) as img:
        assert img.size == (40, 40)

    with pytest.raises(CoverArtError):
        tagger.thumbnail(fakes.candidate(album="Discovery"))


def test_edit_unknown_path_raises(tagger):
    with pytest.raises(KeyError):
        tagger.edit("/nowhere/a.mp3", title="x")


# ----------------------------------------------------------------------
# cli
# ----------------------------------------------------------------------


def test_cli_show_prints_tags(tmp_path, fakes, monkeypatch, capsys):
    loader = fakes.TagLoader()
    monkeypatch.setattr(cli, "MusicTagIO", lambda: MusicTagIO(loader=loader))
    fakes.write_track(tmp_path, "a.mp3", {"tracktitle": "Voyager", "artist": "Daft Punk"})

    assert cli.main(["show", str(tmp_path)]) == 0

    out = capsys.readouterr().out
    assert "title:  Voyager" in out
    assert "artist: Daft Punk" in out
    assert "cover:  none" in out


def test_cli_search_rejects_empty_query(capsys):
    assert cli.main(["search"]) == 2
    assert "at least one" in capsys.readouterr().err


def test_cli_without_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()
