from __future__ import annotations

from typing import Any

import httpx

from ...config import PROVIDER_TIMEOUT, USER_AGENT, logger
from ...models import SourceProvider, TorrentCandidate
from ...utils import build_magnet, safe_int, strip_trailing_year

_API_URL = "https://torrents-csv.com/service/search"
_DEFAULT_LIMIT = 25


async def search_torrents_csv(
    query: str, imdb_id: str | None = None, kind: str | None = None
) -> list[TorrentCandidate]:
    """Title search against the torrents-csv index. Fast, but unfiltered."""
    title = strip_trailing_year(query or "")
    if not title:
        return []

    params = {"q": title, "size": _DEFAULT_LIMIT}
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
        logger.error("[SCRAPER] TorrentsCSV: Request error for '%s': %s", title, exc)
        return []
    except ValueError as exc:
        logger.error(
            "[SCRAPER] TorrentsCSV: Failed to parse JSON for '%s': %s", title, exc
        )
        return []
    except Exception as exc:
        logger.error(f"[SCRAPER ERROR] TorrentsCSV scrape failed: {exc}", exc_info=True)
        return []

    # Older deployments answer with a bare list instead of {"torrents": [...]}.
    if isinstance(payload, dict):
        entries = payload.get("torrents")
    else:
        entries = payload
    if not isinstance(entries, list):
        logger.warning(
            "[SCRAPER] TorrentsCSV: Unexpected payload type %s", type(payload)
        )
        return []

    results = _transform_results(entries)
    logger.info(
        "[SCRAPER] TorrentsCSV: Found %d torrents for '%s'.", len(results), title
    )
    return results


def _transform_results(entries: list[Any]) -> list[TorrentCandidate]:
    results: list[TorrentCandidate] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        info_hash = entry.get("infohash")
        name = entry.get("name")
        if not isinstance(info_hash, str) or not info_hash or not isinstance(name, str):
            continue
        results.append(
            TorrentCandidate(
                name=name,
                info_hash=info_hash,
                source_provider=SourceProvider.TORRENTS_CSV,
                seeders=safe_int(entry.get("seeders")),
                leechers=safe_int(entry.get("leechers")),
                size_bytes=safe_int(entry.get("size_bytes")),
                magnet_uri=build_magnet(info_hash.lower(), name),
            )
        )
    return results
