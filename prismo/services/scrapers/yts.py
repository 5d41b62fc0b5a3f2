from __future__ import annotations

import re
from typing import Any

import httpx

from ...config import PROVIDER_TIMEOUT, USER_AGENT, logger
from ...models import MediaKind, SourceProvider, TorrentCandidate
from ...utils import build_magnet, safe_int, strip_trailing_year

_API_URL = "https://yts.mx/api/v2/list_movies.json"
_DEFAULT_LIMIT = 20
_IMDB_ID = re.compile(r"^tt\d{7,}$")


async def search_yts(
    query: str, imdb_id: str | None = None, kind: str | None = None
) -> list[TorrentCandidate]:
    """Uses the YTS list_movies API to find movie torrents."""
    if kind == MediaKind.SERIES.value:
        return []

    # YTS accepts an IMDb code as the query term, which is exact.
    if imdb_id and _IMDB_ID.match(imdb_id):
        query_term = imdb_id
    else:
        query_term = strip_trailing_year(query or "")
    if not query_term:
        return []

    params: dict[str, Any] = {"query_term": query_term, "limit": _DEFAULT_LIMIT}
    try:
        async with httpx.AsyncClient(
            timeout=PROVIDER_TIMEOUT, follow_redirects=True
        ) as client:
            logger.debug(f"[SCRAPER] YTS API call: {_API_URL} with params {params}")
            response = await client.get(
                _API_URL, params=params, headers={"User-Agent": USER_AGENT}
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as exc:
        logger.error("[SCRAPER] YTS: Request error for '%s': %s", query_term, exc)
        return []
    except ValueError as exc:
        logger.error("[SCRAPER] YTS: Failed to parse JSON for '%s': %s", query_term, exc)
        return []
    except Exception as exc:
        logger.error(f"[SCRAPER ERROR] YTS scrape failed: {exc}", exc_info=True)
        return []

    data = payload.get("data") if isinstance(payload, dict) else None
    movies = data.get("movies") if isinstance(data, dict) else None
    if not isinstance(movies, list):
        logger.debug("[SCRAPER] YTS API response missing 'movies' list.")
        return []

    results = _flatten_movies(movies)
    logger.info(
        f"[SCRAPER] YTS API scrape finished. Found {len(results)} torrents for '{query_term}'."
    )
    return results


def _flatten_movies(movies: list[Any]) -> list[TorrentCandidate]:
    """Every release variant of a movie becomes its own candidate."""
    results: list[TorrentCandidate] = []
    for movie in movies:
        if not isinstance(movie, dict):
            continue
        torrents = movie.get("torrents")
        if not isinstance(torrents, list):
            continue

        title = movie.get("title_english") or movie.get("title") or ""
        year = movie.get("year")
        prefix = f"{title} {year}" if year else str(title)
        imdb_code = movie.get("imdb_code")

        for torrent in torrents:
            if not isinstance(torrent, dict):
                continue
            info_hash = torrent.get("hash")
            if not isinstance(info_hash, str) or not info_hash:
                continue
            quality = torrent.get("quality") or ""
            release_type = torrent.get("type") or ""
            name = " ".join(
                part for part in (prefix, quality, release_type, "YTS") if part
            )
            results.append(
                TorrentCandidate(
                    name=name,
                    info_hash=info_hash,
                    source_provider=SourceProvider.YTS,
                    seeders=safe_int(torrent.get("seeds")),
                    leechers=safe_int(torrent.get("peers")),
                    size_bytes=safe_int(torrent.get("size_bytes")),
                    category="Movies",
                    imdb_id=imdb_code if isinstance(imdb_code, str) else None,
                    magnet_uri=build_magnet(info_hash.lower(), name),
                )
            )
    return results
