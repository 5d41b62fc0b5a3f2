# prismo/utils.py

import math
import re
import urllib.parse
from typing import Any

from .config import FALLBACK_TRACKERS

TRACKER_QUERY = "".join(
    f"&tr={urllib.parse.quote(tracker, safe='')}" for tracker in FALLBACK_TRACKERS
)

_TRAILING_YEAR = re.compile(r"^(?P<title>.*\S)\s+\(?(?:19|20)\d{2}\)?$")
_INFO_HASH = re.compile(r"btih:([a-fA-F0-9]{40}|[a-zA-Z2-7]{32})(?![a-zA-Z0-9])")

_CODEC_PATTERNS = {
    "av1": re.compile(r"(?i)\bav1\b"),
    "x265": re.compile(r"(?i)\b(?:x\s*265|h\s*[.\s]?265|hevc)\b"),
    "x264": re.compile(r"(?i)\b(?:x\s*264|h\s*[.\s]?264|h264|avc)\b"),
}
_RESOLUTION_PATTERN = re.compile(r"(?i)\b(2160p|4k|1080p|720p|480p)\b")
_RESOLUTION_ORDER = ("2160p", "1080p", "720p", "480p")


def safe_int(value: Any) -> int:
    """Parses provider counters; anything missing, negative or non-numeric is 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        return int(value) if value >= 0 else 0
    try:
        parsed = int(str(value).strip())
        return parsed if parsed >= 0 else 0
    except (TypeError, ValueError):
        return 0


def strip_trailing_year(query: str) -> str:
    """
    Removes a trailing release year ("Alien 1979", "Alien (1979)") from a
    free-text query. A query that is only a year is left alone.
    """
    cleaned = query.strip()
    match = _TRAILING_YEAR.match(cleaned)
    if match:
        return match.group("title").strip()
    return cleaned


def build_magnet(info_hash: str, name: str, base_magnet: str | None = None) -> str:
    """
    Composes the canonical magnet for a torrent. The fallback tracker list is
    always appended, also to magnets a provider supplied itself.
    """
    if base_magnet and base_magnet.startswith("magnet:?"):
        return f"{base_magnet}{TRACKER_QUERY}"
    return (
        f"magnet:?xt=urn:btih:{info_hash}"
        f"&dn={urllib.parse.quote(name, safe='')}"
        f"{TRACKER_QUERY}"
    )


def extract_info_hash(magnet: str) -> str | None:
    """Returns the lower-cased btih hash of a magnet link, if any."""
    if not magnet:
        return None
    match = _INFO_HASH.search(magnet)
    return match.group(1).lower() if match else None


def format_bytes(size_bytes: int) -> str:
    """Converts bytes into a human-readable string (e.g., KB, MB, GB)."""
    if size_bytes <= 0:
        return "0B"
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_name) - 1)
    p = math.pow(1024, i)
    s = round(size_bytes / p, 2)
    return f"{s} {size_name[i]}"


def parse_codec(title: str) -> str | None:
    """Extracts codec information from a torrent title.

    Handles common variants and spacing/punctuation, e.g.:
    - "H264", "H.264", "x264", "AVC" -> "x264"
    - "H265", "H.265", "x265", "HEVC" -> "x265"
    - "AV1" -> "av1"
    """
    for normalized, pattern in _CODEC_PATTERNS.items():
        if pattern.search(title):
            return normalized
    return None


def parse_resolution(title: str) -> str | None:
    """Highest resolution tag in the title; "4k" counts as 2160p."""
    found = {
        "2160p" if value.lower() == "4k" else value.lower()
        for value in _RESOLUTION_PATTERN.findall(title)
    }
    for resolution in _RESOLUTION_ORDER:
        if resolution in found:
            return resolution
    return None


def parse_size_to_bytes(size_str: str) -> int:
    """Convert strings like ``'1.5 GB'`` or ``'500 MB'`` to bytes."""
    size_str = (size_str or "").lower().replace(",", "")
    match = re.search(r"([\d.]+)", size_str)
    if not match:
        return 0
    try:
        value = float(match.group(1))
    except ValueError:
        return 0
    if "tb" in size_str:
        return int(value * 1024**4)
    if "gb" in size_str:
        return int(value * 1024**3)
    if "mb" in size_str:
        return int(value * 1024**2)
    if "kb" in size_str:
        return int(value * 1024)
    return int(value)
