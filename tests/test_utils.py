import math
import urllib.parse

import pytest

from prismo.config import FALLBACK_TRACKERS
from prismo.utils import (
    build_magnet,
    extract_info_hash,
    format_bytes,
    parse_codec,
    parse_resolution,
    parse_size_to_bytes,
    safe_int,
    strip_trailing_year,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("42", 42),
        (17, 17),
        (3.9, 3),
        ("-5", 0),
        (-1, 0),
        ("many", 0),
        (None, 0),
        (True, 0),
        (math.nan, 0),
        (math.inf, 0),
        (" 8 ", 8),
    ],
)
def test_safe_int(value, expected):
    assert safe_int(value) == expected


@pytest.mark.parametrize(
    "query, expected",
    [
        ("Alien 1979", "Alien"),
        ("Alien (1979)", "Alien"),
        ("Blade Runner 2049", "Blade Runner"),
        ("2012", "2012"),
        ("The Matrix", "The Matrix"),
        ("  Heat 1995  ", "Heat"),
    ],
)
def test_strip_trailing_year(query, expected):
    assert strip_trailing_year(query) == expected


def test_build_magnet_appends_every_fallback_tracker_in_order():
    magnet = build_magnet("ab" * 20, "Some Movie [2021]")

    assert magnet.startswith("magnet:?xt=urn:btih:" + "ab" * 20 + "&dn=Some%20Movie%20%5B2021%5D")
    trackers = urllib.parse.parse_qs(urllib.parse.urlparse(magnet).query)["tr"]
    assert trackers == FALLBACK_TRACKERS


def test_build_magnet_extends_provider_magnet():
    base = "magnet:?xt=urn:btih:" + "c" * 40 + "&dn=x&tr=udp%3A%2F%2Fown.tracker%3A1"
    magnet = build_magnet("c" * 40, "x", base)

    assert magnet.startswith(base + "&tr=")
    trackers = urllib.parse.parse_qs(urllib.parse.urlparse(magnet).query)["tr"]
    assert trackers == ["udp://own.tracker:1"] + FALLBACK_TRACKERS


@pytest.mark.parametrize(
    "magnet, expected",
    [
        ("magnet:?xt=urn:btih:" + "ABCDEF0123" * 4 + "&dn=x", "abcdef0123" * 4),
        ("magnet:?dn=x&xt=urn:btih:" + "a" * 40, "a" * 40),
        ("magnet:?dn=no-hash", None),
        ("", None),
    ],
)
def test_extract_info_hash(magnet, expected):
    assert extract_info_hash(magnet) == expected


def test_format_bytes():
    assert format_bytes(0) == "0B"
    assert format_bytes(1024) == "1.0 KB"
    assert format_bytes(int(1.5 * 1024**3)) == "1.5 GB"


@pytest.mark.parametrize(
    "title, codec",
    [
        ("Movie.2021.1080p.x265", "x265"),
        ("Movie 2021 H.264", "x264"),
        ("Movie HEVC", "x265"),
        ("Movie AV1", "av1"),
        ("Movie", None),
    ],
)
def test_parse_codec(title, codec):
    assert parse_codec(title) == codec


def test_parse_resolution():
    assert parse_resolution("Movie 4K HDR") == "2160p"
    assert parse_resolution("Movie.1080p.WEB") == "1080p"
    assert parse_resolution("Movie 720p 1080p Remux") == "1080p"
    assert parse_resolution("Movie_480p") is None
    assert parse_resolution("Movie") is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1.5 GB", int(1.5 * 1024**3)),
        ("700 MB", 700 * 1024**2),
        ("2 TB", 2 * 1024**4),
        ("1,024 KB", 1024 * 1024),
        ("unknown", 0),
    ],
)
def test_parse_size_to_bytes(text, expected):
    assert parse_size_to_bytes(text) == expected
