from __future__ import annotations

import os
import shutil
import tempfile
from typing import Any, Callable, List, Optional

import music_tag
import mutagen

from tunetag import config
from tunetag import logger as logger_mod

from ...errors import SaveFailed
from ...helpers import safe_str
from ...models import CoverArt, TagFields

log = logger_mod.get_logger()

# TagFields attribute -> music_tag key
TEXT_KEYS = {
    "title": "tracktitle",
    "artist": "artist",
    "album": "album",
}


def is_audio_file(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in config.AUDIO_EXTENSIONS


class MusicTagIO:
    """Adapter around the `music_tag` library.

    This module is *only* about reading/writing tags on local files. Writes
    are atomic: tags go into a temporary copy next to the original, which
    then replaces it, so a failed save leaves the file untouched.
    """

    def __init__(self, loader: Optional[Callable[[str], Any]] = None):
        self._load = loader or music_tag.load_file

    def read(self, path: str) -> TagFields:
        try:
            f = self._load(path)
        except (mutagen.MutagenError, OSError, ValueError) as e:
            log.error(f"[TAG-READ] {os.path.basename(path)}: {e!r}")
            raise

        fields = TagFields()
        for attr, key in TEXT_KEYS.items():
            try:
                setattr(fields, attr, safe_str(f[key]).strip())
            except (KeyError, ValueError, mutagen.MutagenError) as e:
                log.error(f"[TAG-READ] {path}: failed reading {key}: {e!r}")

        try:
            art = f["artwork"]
            first = getattr(art, "first", None)
            if first is not None and getattr(first, "data", None):
                fields.cover_art = CoverArt(
                    data=bytes(first.data), mime_type=getattr(first, "mime", None) or "image/jpeg"
                )
        except (KeyError, ValueError, mutagen.MutagenError) as e:
            log.warning(f"[TAG-READ] {path}: unreadable artwork: {e!r}")

        return fields

    def _apply(self, f: Any, fields: TagFields) -> None:
        for attr, key in TEXT_KEYS.items():
            value = getattr(fields, attr)
            if value:
                f[key] = value
            else:
                f.remove_tag(key)
        if fields.cover_art is not None:
            f["artwork"] = fields.cover_art.data
        else:
            f.remove_tag("artwork")

    def write(self, path: str, fields: TagFields) -> None:
        """Persist `fields` to `path` atomically. Raises SaveFailed."""
        folder = os.path.dirname(os.path.abspath(path))
        suffix = os.path.splitext(path)[1]
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".tunetag-", suffix=suffix, dir=folder)
        except OSError as e:
            raise SaveFailed(path, f"cannot create temporary file: {e}", cause=e) from e
        os.close(fd)

        try:
            shutil.copy2(path, tmp_path)
            f = self._load(tmp_path)
            self._apply(f, fields)
            f.save()
            os.replace(tmp_path, path)
        except Exception as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            log.error(f"❌ [TAG-WRITE] {os.path.basename(path)}: {e!r}")
            raise SaveFailed(path, str(e) or type(e).__name__, cause=e) from e

        log.info(f"[TAG-WRITE] saved {os.path.basename(path)}")

    def list_files(self, folder: str) -> List[str]:
        """Audio files directly inside `folder`, sorted by name."""
        try:
            names = os.listdir(folder)
        except OSError as e:
            log.error(f"[TAG-READ] cannot list {folder}: {e}")
            raise
        paths = [os.path.join(folder, n) for n in names]
        return sorted(p for p in paths if os.path.isfile(p) and is_audio_file(p))
