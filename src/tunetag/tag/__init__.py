"""Tag editing: merging metadata into open tracks, cover art, and file IO.

Public API:
- TagWriter, ApplyResult
- MusicTagIO
- decode_cover_art, make_thumbnail
"""

from .cover_art import decode_cover_art, make_thumbnail
from .io.music_tag_io import MusicTagIO
from .writer import ApplyResult, TagWriter

__all__ = ["ApplyResult", "MusicTagIO", "TagWriter", "decode_cover_art", "make_thumbnail"]
