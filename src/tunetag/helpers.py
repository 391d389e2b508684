import os
import re
import unicodedata
from typing import Any

# Disc-track ("1-02 "), number plus separator ("01 - ", "3. ", "07_"),
# or a zero-padded number ("05 "). "99 Problems" keeps its number.
_LEADING_TRACK_NUMBER = re.compile(
    r"^\s*(?:\d{1,2}[-.]\d{2,3}\s+|\d{1,3}\s*[-._)]\s*|0\d\s+)"
)


def safe_str(v: Any) -> str:
    """Best-effort stringify without turning missing values into the literal 'None'."""
    if v is None:
        return ""
    try:
        s = str(v)
    except Exception:
        return ""
    # Some tag wrappers stringify missing values as "None"
    if s.strip().lower() == "none":
        return ""
    return s


def collapse_whitespace(v: Any) -> str:
    return re.sub(r"\s+", " ", safe_str(v)).strip()


def normalize_for_compare(v: Any) -> str:
    """Canonical comparison form: NFKC, casefolded, single-spaced."""
    s = unicodedata.normalize("NFKC", safe_str(v))
    return collapse_whitespace(s).casefold()


def strip_track_number(name: str) -> str:
    """Drop a leading track number such as '01 - ', '3. ' or '1-02 '."""
    stripped = _LEADING_TRACK_NUMBER.sub("", name, count=1)
    return stripped if stripped.strip() else name


def title_from_filename(path: str) -> str:
    """Derive a display title from a file name.

    '01 - One More Time.mp3' -> 'One More Time'
    'aerodynamic_(live).flac' -> 'aerodynamic (live)'
    """
    stem = os.path.splitext(os.path.basename(path))[0]
    return collapse_whitespace(strip_track_number(stem).replace("_", " "))
