import io
import json
import sys
import threading
from pathlib import Path

import mutagen
import pytest
from PIL import Image

# src/ layout: make `tunetag` importable without an editable install.
SRC = Path(__file__).resolve().parents[2] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tunetag.models import Candidate  # noqa: E402

_INVALID_JSON = object()


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}

    def json(self):
        if self._json is _INVALID_JSON:
            raise ValueError("Expecting value: line 1 column 1")
        return self._json


class FakeSession:
    """Stands in for requests.Session; replies from a queue or a handler."""

    def __init__(self, *responses, handler=None):
        self.responses = list(responses)
        self.handler = handler
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if self.handler is not None:
            reply = self.handler(url, params)
        else:
            reply = self.responses.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class ManualTimer:
    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def live(self):
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        # Fires even when cancelled: a real Timer can lose that race too.
        self.fired = True
        self.function(*self.args)


class ManualTimers:
    """Timer factory for SaveScheduler; nothing fires until a test says so."""

    def __init__(self):
        self.created = []

    def __call__(self, interval, function, args=()):
        timer = ManualTimer(interval, function, args)
        self.created.append(timer)
        return timer

    def live(self):
        return [t for t in self.created if t.live]

    def fire_all(self):
        for timer in self.live():
            timer.fire()


class FakeArtwork:
    def __init__(self, data, mime):
        self.data = data
        self.mime = mime


class FakeArtworkItem:
    def __init__(self, art):
        self.first = art


class FakeTagFile:
    """music_tag file stand-in: the tags live in the file itself as JSON."""

    def __init__(self, path):
        self.path = path
        raw = Path(path).read_text() or "{}"
        self.tags = json.loads(raw)

    def __getitem__(self, key):
        if key == "artwork":
            art = self.tags.get("artwork")
            if not art:
                return FakeArtworkItem(None)
            return FakeArtworkItem(FakeArtwork(bytes.fromhex(art["data"]), art["mime"]))
        return self.tags.get(key, "")

    def __setitem__(self, key, value):
        if key == "artwork":
            self.tags["artwork"] = {"data": bytes(value).hex(), "mime": "image/png"}
        else:
            self.tags[key] = str(value)

    def remove_tag(self, key):
        self.tags.pop(key, None)

    def save(self):
        if self.tags.get("fail_save"):
            raise OSError("disk full")
        Path(self.path).write_text(json.dumps(self.tags))


class FakeTagLoader:
    def __init__(self):
        self.loaded = []

    def __call__(self, path):
        self.loaded.append(path)
        raw = Path(path).read_text()
        if raw.startswith("garbage"):
            raise mutagen.MutagenError("not an audio file")
        return FakeTagFile(path)


class FakeProvider:
    """A ProviderClient with canned results; `gate` blocks search until set."""

    def __init__(self, name, candidates=(), error=None, gate=None, cover=b""):
        self.name = name
        self.candidates = list(candidates)
        self.error = error
        self.gate = gate
        self.cover = cover
        self.searches = []
        self.cover_requests = []

    def authenticate(self):
        pass

    def search(self, query):
        self.searches.append(query)
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.candidates)

    def fetch_cover_art(self, candidate):
        self.cover_requests.append(candidate)
        if isinstance(self.cover, BaseException):
            raise self.cover
        return self.cover


def png_bytes(size=(64, 32), color="red"):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def write_track(folder, name, tags=None):
    path = Path(folder) / name
    path.write_text(json.dumps(tags or {}))
    return path


def read_tags(path):
    return json.loads(Path(path).read_text())


def candidate(title="", artist="", album="", provider="Apple Music", url=None, confidence=0.0):
    return Candidate(
        title=title,
        artist=artist,
        album=album,
        provider=provider,
        cover_art_url=url,
        provider_confidence=confidence,
    )


@pytest.fixture
def fakes():
    """Namespace of fake collaborators shared by the test modules."""

    class _Fakes:
        Response = FakeResponse
        Session = FakeSession
        Timers = ManualTimers
        TagLoader = FakeTagLoader
        Provider = FakeProvider
        INVALID_JSON = _INVALID_JSON

    _Fakes.png_bytes = staticmethod(png_bytes)
    _Fakes.write_track = staticmethod(write_track)
    _Fakes.read_tags = staticmethod(read_tags)
    _Fakes.candidate = staticmethod(candidate)
    return _Fakes


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def gate():
    ev = threading.Event()
    yield ev
    ev.set()
