from __future__ import annotations

import re
from typing import Any

import httpx

from ...config import PROVIDER_TIMEOUT, USER_AGENT, logger
from ...models import MediaKind, SourceProvider, TorrentCandidate
from ...utils import build_magnet, safe_int

_API_URL = "https://eztvx.to/api/get-torrents"
_DEFAULT_LIMIT = 100
_IMDB_ID = re.compile(r"^tt(\d{7,})$")


def imdb_numeric_id(imdb_id: str | None) -> str | None:
    """Returns the digits of a well-formed IMDb id ("tt0903747" -> "0903747")."""
    if not isinstance(imdb_id, str):
        return None
    match = _IMDB_ID.match(imdb_id.strip())
    return match.group(1) if match else None


async def search_eztv(
    query: str, imdb_id: str | None = None, kind: str | None = None
) -> list[TorrentCandidate]:
    """Series torrents from EZTV. The API only searches by IMDb id."""
    if kind == MediaKind.MOVIE.value:
        return []
    numeric_id = imdb_numeric_id(imdb_id)
    if numeric_id is None:
        return []

    params = {"imdb_id": numeric_id, "limit": _DEFAULT_LIMIT}
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
        logger.error("[SCRAPER] EZTV: Request error for '%s': %s", imdb_id, exc)
        return []
    except ValueError as exc:
        logger.error("[SCRAPER] EZTV: Failed to parse JSON for '%s': %s", imdb_id, exc)
        return []
    except Exception as exc:
        logger.error(f"[SCRAPER ERROR] EZTV scrape failed: {exc}", exc_info=True)
        return []

    torrents = payload.get("torrents") if isinstance(payload, dict) else None
    if not isinstance(torrents, list):
        logger.info("[SCRAPER] EZTV: No torrents listed for '%s'.", imdb_id)
        return []

    results = _transform_results(torrents, imdb_id)
    logger.info("[SCRAPER] EZTV: Found %d torrents for '%s'.", len(results), imdb_id)
    return results


def _transform_results(
    entries: list[Any], imdb_id: str | None
) -> list[TorrentCandidate]:
    results: list[TorrentCandidate] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        info_hash = entry.get("hash")
        name = entry.get("title") or entry.get("filename")
        if not isinstance(info_hash, str) or not info_hash or not name:
            continue
        supplied_magnet = entry.get("magnet_url")
        results.append(
            TorrentCandidate(
                name=str(name),
                info_hash=info_hash,
                source_provider=SourceProvider.EZTV,
                seeders=safe_int(entry.get("seeds")),
                leechers=safe_int(entry.get("peers")),
                size_bytes=safe_int(entry.get("size_bytes")),
                category="TV",
                imdb_id=imdb_id,
                magnet_uri=build_magnet(
                    info_hash.lower(),
                    str(name),
                    supplied_magnet if isinstance(supplied_magnet, str) else None,
                ),
            )
        )
    return results
