from __future__ import annotations

from typing import Any, Iterable

import httpx

from ...config import PROVIDER_TIMEOUT, USER_AGENT, logger
from ...models import SourceProvider, TorrentCandidate
from ...utils import build_magnet, safe_int

_API_URL = "https://apibay.org/q.php"
_VIDEO_CATEGORY = "200"
_NO_RESULTS_NAME = "No results returned"

_CATEGORY_NAMES = {
    "200": "Video",
    "201": "Movies",
    "202": "Movies DVDR",
    "203": "Music videos",
    "204": "Movie clips",
    "205": "TV shows",
    "206": "Handheld",
    "207": "HD - Movies",
    "208": "HD - TV shows",
    "209": "3D",
    "210": "CAM/TS",
    "211": "UHD/4k - Movies",
    "212": "UHD/4k - TV shows",
    "299": "Other",
}


async def search_apibay(
    query: str, imdb_id: str | None = None, kind: str | None = None
) -> list[TorrentCandidate]:
    """General-purpose search through the apibay JSON API (video categories)."""
    if not isinstance(query, str) or not query.strip():
        return []

    params = {"q": query.strip(), "cat": _VIDEO_CATEGORY}
    try:
        async with httpx.AsyncClient(
            timeout=PROVIDER_TIMEOUT, follow_redirects=True
        ) as client:
            response = await client.get(
                _API_URL, params=params, headers={"User-Agent": USER_AGENT}
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as exc:
        logger.error("[SCRAPER] APIBay: Request error for query '%s': %s", query, exc)
        return []
    except ValueError as exc:  # JSON decode
        logger.error("[SCRAPER] APIBay: Failed to parse JSON for '%s': %s", query, exc)
        return []
    except Exception as exc:
        logger.error(
            "[SCRAPER] APIBay: Unexpected failure for '%s': %s",
            query,
            exc,
            exc_info=True,
        )
        return []

    if not isinstance(payload, list):
        logger.warning("[SCRAPER] APIBay: Unexpected payload type %s", type(payload))
        return []

    results = _transform_results(payload)
    logger.info(
        "[SCRAPER] APIBay: Found %d torrents for query '%s'.", len(results), query
    )
    return results


def _transform_results(entries: Iterable[Any]) -> list[TorrentCandidate]:
    results: list[TorrentCandidate] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        info_hash = entry.get("info_hash")
        name = entry.get("name")
        if not isinstance(info_hash, str) or not isinstance(name, str):
            continue
        # apibay answers an empty search with a single placeholder row
        if name == _NO_RESULTS_NAME or info_hash.strip("0") == "":
            continue

        imdb = entry.get("imdb")
        results.append(
            TorrentCandidate(
                name=name,
                info_hash=info_hash,
                source_provider=SourceProvider.APIBAY,
                seeders=safe_int(entry.get("seeders")),
                leechers=safe_int(entry.get("leechers")),
                size_bytes=safe_int(entry.get("size")),
                category=_category_name(entry.get("category")),
                imdb_id=imdb if isinstance(imdb, str) and imdb else None,
                magnet_uri=build_magnet(info_hash.lower(), name),
            )
        )
    return results


def _category_name(raw: Any) -> str | None:
    if raw is None:
        return None
    code = str(raw).strip()
    if not code:
        return None
    if code in _CATEGORY_NAMES:
        return _CATEGORY_NAMES[code]
    if code.startswith("5") and len(code) == 3 and code.isdigit():
        return "Porn"
    return code
