# prismo/services/metadata.py

import urllib.parse
from typing import Any

import httpx

from ..config import USER_AGENT, logger
from ..models import MediaKind, TitleMatch

_SUGGESTION_URL = "https://v2.sg.media-imdb.com/suggestion/{first}/{query}.json"
_TIMEOUT = 5

_SERIES_KINDS = {"tvSeries", "tvMiniSeries"}
_MOVIE_KINDS = {"movie", "tvMovie", "video"}


async def search_titles(query: str) -> list[TitleMatch]:
    """
    Looks up movie and series titles through IMDb's suggestion API.

    People and other non-title entries are skipped. Any failure yields an
    empty list.
    """
    clean_query = (query or "").lower().strip()
    if not clean_query:
        return []

    url = _SUGGESTION_URL.format(
        first=urllib.parse.quote(clean_query[0], safe=""),
        query=urllib.parse.quote(clean_query, safe=""),
    )
    logger.info(f"[METADATA] Fetching title suggestions from {url}")
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT, follow_redirects=True) as client:
            response = await client.get(url, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPError as e:
        logger.error(f"[METADATA] Request error for '{query}': {e}")
        return []
    except ValueError as e:
        logger.error(f"[METADATA] Failed to parse suggestions for '{query}': {e}")
        return []

    entries = data.get("d") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        logger.info(f"[METADATA] No suggestions returned for '{query}'.")
        return []

    results = [match for match in map(_to_title_match, entries) if match is not None]
    logger.info(f"[METADATA] Found {len(results)} titles for '{query}'.")
    return results


def _to_title_match(entry: Any) -> TitleMatch | None:
    if not isinstance(entry, dict):
        return None
    title_id = entry.get("id")
    title = entry.get("l")
    if not isinstance(title_id, str) or not title_id.startswith("tt") or not title:
        return None

    image = entry.get("i")
    image_url = image.get("imageUrl", "") if isinstance(image, dict) else ""
    year = entry.get("y")

    kind = None
    qid = entry.get("qid")
    if qid in _SERIES_KINDS:
        kind = MediaKind.SERIES.value
    elif qid in _MOVIE_KINDS:
        kind = MediaKind.MOVIE.value

    return TitleMatch(
        id=title_id,
        title=str(title),
        year=str(year) if year else "",
        image=image_url,
        kind=kind,
    )
