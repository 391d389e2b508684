import os

import mutagen
import pytest

from tunetag.errors import SaveFailed
from tunetag.models import CoverArt, TagFields
from tunetag.scheduler import SaveScheduler
from tunetag.session import EditorSession
from tunetag.tag import MusicTagIO


def test_read_returns_text_fields_and_artwork(tmp_path, fakes):
    path = fakes.write_track(
        tmp_path,
        "01 - One More Time.mp3",
        {
            "tracktitle": "One More Time",
            "artist": "Daft Punk",
            "artwork": {"data": b"\x89PNG".hex(), "mime": "image/png"},
        },
    )
    io = MusicTagIO(loader=fakes.TagLoader())

    fields = io.read(str(path))

    assert fields.title == "One More Time"
    assert fields.artist == "Daft Punk"
    assert fields.album == ""
    assert fields.cover_art == CoverArt(b"\x89PNG", "image/png")


def test_write_replaces_file_atomically(tmp_path, fakes):
    path = fakes.write_track(tmp_path, "a.flac", {"tracktitle": "Old", "genre": "House"})
    io = MusicTagIO(loader=fakes.TagLoader())

    io.write(str(path), TagFields(title="New", artist="Daft Punk", album="", cover_art=CoverArt(b"img")))

    tags = fakes.read_tags(path)
    assert tags["tracktitle"] == "New"
    assert tags["artist"] == "Daft Punk"
    assert "album" not in tags
    assert tags["genre"] == "House"
    assert bytes.fromhex(tags["artwork"]["data"]) == b"img"
    assert os.listdir(tmp_path) == ["a.flac"]


def test_failed_write_leaves_original_untouched(tmp_path, fakes):
    original = {"tracktitle": "Old", "fail_save": True}
    path = fakes.write_track(tmp_path, "a.mp3", original)
    io = MusicTagIO(loader=fakes.TagLoader())

    with pytest.raises(SaveFailed) as ei:
        io.write(str(path), TagFields(title="New"))

    assert ei.value.path == str(path)
    assert "disk full" in ei.value.reason
    assert fakes.read_tags(path) == original
    assert os.listdir(tmp_path) == ["a.mp3"]


def test_write_to_missing_file_fails_cleanly(tmp_path, fakes):
    io = MusicTagIO(loader=fakes.TagLoader())
    with pytest.raises(SaveFailed):
        io.write(str(tmp_path / "gone.mp3"), TagFields(title="x"))
    assert os.listdir(tmp_path) == []


def test_list_files_only_returns_audio_sorted(tmp_path, fakes):
    for name in ("b.mp3", "a.FLAC", "cover.jpg", "c.m4a", "notes.txt", "d.wav", "e.ogg"):
        fakes.write_track(tmp_path, name)
    (tmp_path / "sub.mp3").mkdir()

    names = [os.path.basename(p) for p in MusicTagIO(loader=fakes.TagLoader()).list_files(str(tmp_path))]

    assert names == ["a.FLAC", "b.mp3", "c.m4a", "d.wav", "e.ogg"]


def test_unreadable_file_raises_from_read(tmp_path, fakes):
    path = tmp_path / "broken.mp3"
    path.write_text("garbage")
    with pytest.raises(mutagen.MutagenError):
        MusicTagIO(loader=fakes.TagLoader()).read(str(path))


# ----------------------------------------------------------------------
# editor session
# ----------------------------------------------------------------------


def make_session(fakes, timers):
    io = MusicTagIO(loader=fakes.TagLoader())
    scheduler = SaveScheduler(io.write, timer_factory=timers)
    return EditorSession(io, scheduler), scheduler


def test_open_folder_loads_tracks_and_survives_unreadable_files(tmp_path, fakes, timers):
    fakes.write_track(tmp_path, "01.mp3", {"tracktitle": "Aerodynamic"})
    (tmp_path / "02.mp3").write_text("garbage")
    session, _scheduler = make_session(fakes, timers)

    tracks = session.open_folder(str(tmp_path))

    assert [t.name for t in tracks] == ["01.mp3", "02.mp3"]
    assert tracks[0].fields.title == "Aerodynamic"
    assert tracks[0].snapshot == tracks[0].fields
    assert tracks[1].fields == TagFields()
    assert session.get(str(tmp_path / "01.mp3")) is tracks[0]


def test_user_edit_can_clear_a_field_and_is_saved_after_debounce(tmp_path, fakes, timers):
    path = fakes.write_track(tmp_path, "01.mp3", {"tracktitle": "Aerodynamic", "album": "Discovery"})
    session, _scheduler = make_session(fakes, timers)
    (track,) = session.open_folder(str(tmp_path))

    session.edit(track, title="Aerodynamic (Live)", album="")
    assert fakes.read_tags(path)["tracktitle"] == "Aerodynamic"

    timers.fire_all()

    tags = fakes.read_tags(path)
    assert tags["tracktitle"] == "Aerodynamic (Live)"
    assert "album" not in tags


def test_switching_folders_releases_previous_tracks(tmp_path, fakes, timers):
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    path = fakes.write_track(first, "a.mp3", {"tracktitle": "Old"})
    fakes.write_track(second, "b.mp3")
    session, scheduler = make_session(fakes, timers)
    (track,) = session.open_folder(str(first))

    session.edit(track, title="Unsaved")
    pending = timers.live()
    session.open_folder(str(second), save_pending=False)

    assert all(t.cancelled for t in pending)
    assert fakes.read_tags(path)["tracktitle"] == "Old"
    assert session.folder == str(second)
    assert scheduler.pending() == []


def test_close_folder_can_flush_pending_edits(tmp_path, fakes, timers):
    path = fakes.write_track(tmp_path, "a.mp3", {"tracktitle": "Old"})
    session, _scheduler = make_session(fakes, timers)
    (track,) = session.open_folder(str(tmp_path))

    session.edit(track, title="New")
    outcomes = session.close_folder(save_pending=True)

    assert [o.saved for o in outcomes] == [True]
    assert fakes.read_tags(path)["tracktitle"] == "New"
    assert session.tracks() == []


def test_revert_restores_snapshot(tmp_path, fakes, timers):
    fakes.write_track(tmp_path, "a.mp3", {"tracktitle": "Old"})
    session, _scheduler = make_session(fakes, timers)
    (track,) = session.open_folder(str(tmp_path))

    session.edit(track, title="Oops")
    session.revert(track)

    assert track.fields.title == "Old"
    assert track.dirty is False
