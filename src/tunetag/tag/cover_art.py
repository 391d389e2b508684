from __future__ import annotations

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import CoverArtError
from ..models import CoverArt

THUMBNAIL_SIZES = (40, 50)


def decode_cover_art(data: bytes) -> CoverArt:
    """Check that `data` is a real image and work out its MIME type."""
    if not data:
        raise CoverArtError("empty image data")
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise CoverArtError(f"undecodable image: {e}") from e

    mime = Image.MIME.get(fmt or "", "")
    if not mime:
        raise CoverArtError(f"unsupported image format {fmt!r}")
    return CoverArt(data=bytes(data), mime_type=mime)


def make_thumbnail(data: bytes, size: int = 50) -> bytes:
    """Square PNG thumbnail: scale to cover `size`x`size`, then centre-crop."""
    if size <= 0:
        raise ValueError("size must be positive")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = img.convert("RGBA")
            thumb = ImageOps.fit(img, (size, size), method=Image.Resampling.LANCZOS)
    except (UnidentifiedImageError, OSError) as e:
        raise CoverArtError(f"undecodable image: {e}") from e

    out = io.BytesIO()
    thumb.save(out, format="PNG")
    return out.getvalue()
