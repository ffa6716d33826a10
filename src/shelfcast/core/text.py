# shelfcast/core/text.py

import hashlib
import math
import re
from typing import Any, List, Optional, Union

from bs4 import BeautifulSoup

_HMS_RE = re.compile(r"(\d+):(\d+):(\d+)")
_ISO_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)
_AUDIO_EXT_RE = re.compile(r"\.(mp3|ogg|m4a|flac|opus)$", re.IGNORECASE)
_LEADING_NUMBER_RE = re.compile(r"^\d+\s*-?\s*")
_NON_KEY_CHARS_RE = re.compile(r"[^a-z0-9]")


def strip_html(text: Optional[str]) -> str:
    """Removes HTML tags and decodes entities, returning plain text."""
    if not text:
        return ""
    if "<" not in text and "&" not in text:
        return text.strip()
    plain = BeautifulSoup(text, "html.parser").get_text(" ")
    return " ".join(plain.split())


def parse_duration(value: Union[str, int, float, None]) -> int:
    """
    Parses "H:MM:SS", "MM:SS" or bare seconds into whole seconds.
    Anything unparseable is 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) and value > 0 else 0

    text = str(value).strip()
    if not text:
        return 0
    try:
        parts = [float(part) for part in text.split(":")]
    except ValueError:
        return 0
    if len(parts) > 3 or any(part < 0 or not math.isfinite(part) for part in parts):
        return 0

    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + part
    return int(seconds)


def parse_runtime(runtime: Any) -> int:
    """Parses an archive-style runtime ("01:02:03", "PT1H2M3S" or "45:10")."""
    if not runtime:
        return 0
    if isinstance(runtime, list):
        runtime = runtime[0] if runtime else ""
    text = str(runtime).strip()

    match = _HMS_RE.search(text)
    if match:
        hours, minutes, seconds = (int(group) for group in match.groups())
        return hours * 3600 + minutes * 60 + seconds

    iso = _ISO_DURATION_RE.match(text)
    if iso and any(iso.groupdict().values()):
        parts = {name: float(val) if val else 0.0 for name, val in iso.groupdict().items()}
        return int(parts["days"] * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"])

    return parse_duration(text)


def natural_sort_key(name: str) -> List[Union[str, int]]:
    """Sort key that orders "2.mp3" before "10.mp3"."""
    return [int(chunk) if chunk.isdigit() else chunk for chunk in re.split(r"(\d+)", name.lower())]


def normalize_key(text: Optional[str]) -> str:
    """Lowercases and drops every character outside [a-z0-9]."""
    return _NON_KEY_CHARS_RE.sub("", (text or "").lower())


def dedup_key(title: Optional[str], author: Optional[str]) -> str:
    return f"{normalize_key(title)}_{normalize_key(author)}"


def chapter_title_from_filename(file_name: str, number: int) -> str:
    """Turns "03_the_red_headed_league.mp3" into "the red headed league"."""
    base = file_name.rsplit("/", 1)[-1]
    base = _AUDIO_EXT_RE.sub("", base).replace("_", " ")
    title = _LEADING_NUMBER_RE.sub("", base).strip()
    return title or f"Chapter {number}"


def stable_id(*parts: Optional[str]) -> str:
    """Short content hash, identical for identical inputs across runs."""
    joined = "|".join(part or "" for part in parts)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]


def first_of(value: Any, default: Any = None) -> Any:
    """Archive fields may be a scalar or a list; returns the first value."""
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return value


def to_int(value: Any, default: int = 0) -> int:
    """Lenient int() for upstream counters; malformed values give `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return int(number) if math.isfinite(number) else default


def first_id(*values: Any) -> str:
    """The first identifier that is present. 0 is a valid id; None and "" are not."""
    for value in values:
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


_LANGUAGE_NAMES = {
    "english": "en",
    "eng": "en",
    "german": "de",
    "deutsch": "de",
    "ger": "de",
    "french": "fr",
    "français": "fr",
    "fre": "fr",
    "spanish": "es",
    "español": "es",
    "spa": "es",
    "italian": "it",
    "ita": "it",
    "dutch": "nl",
    "portuguese": "pt",
    "russian": "ru",
    "latin": "la",
    "chinese": "zh",
    "japanese": "ja",
    "polish": "pl",
    "greek": "el",
}


def language_code(value: Any, default: str = "en") -> str:
    """Maps "English", "eng" or "en-US" onto a two-letter code."""
    value = first_of(value)
    if not value:
        return default
    text = str(value).strip().lower()
    if text in _LANGUAGE_NAMES:
        return _LANGUAGE_NAMES[text]
    primary = re.split(r"[-_]", text, maxsplit=1)[0]
    if len(primary) == 2 and primary.isalpha():
        return primary
    return _LANGUAGE_NAMES.get(primary, default)
