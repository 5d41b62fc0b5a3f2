from __future__ import annotations

import re
import urllib.parse

import httpx
from bs4 import BeautifulSoup, Tag

from ...config import PROVIDER_TIMEOUT, USER_AGENT, logger
from ...models import SourceProvider, TorrentCandidate
from ...utils import build_magnet, extract_info_hash, parse_size_to_bytes, safe_int

_BASE_URL = "https://bitsearch.to"
_SITE_PREFIX = re.compile(r"^\[bitsearch\.to\]\s*", re.IGNORECASE)
_SIZE_TEXT = re.compile(r"\d[\d.,]*\s*(?:[KMGT]B|bytes)", re.IGNORECASE)
_SEEDER_COLOR = "#0ab49a"
_LEECHER_COLOR = "#c35257"


async def search_bitsearch(
    query: str, imdb_id: str | None = None, kind: str | None = None
) -> list[TorrentCandidate]:
    """Scrapes the BitSearch meta-search result page."""
    if not isinstance(query, str) or not query.strip():
        return []

    url = f"{_BASE_URL}/search"
    params = {"q": query.strip(), "sort": "seeders", "category": "1"}
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Referer": _BASE_URL,
    }
    try:
        async with httpx.AsyncClient(
            timeout=PROVIDER_TIMEOUT, follow_redirects=True
        ) as client:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            html = response.text
    except httpx.HTTPError as exc:
        logger.error("[SCRAPER] BitSearch: Request error for '%s': %s", query, exc)
        return []
    except Exception as exc:
        logger.error(f"[SCRAPER ERROR] BitSearch scrape failed: {exc}", exc_info=True)
        return []

    try:
        results = parse_results_page(html)
    except Exception as exc:
        logger.error("[SCRAPER] BitSearch: Failed to parse results page: %s", exc)
        return []

    logger.info("[SCRAPER] BitSearch: Found %d torrents for '%s'.", len(results), query)
    return results


def parse_results_page(html: str) -> list[TorrentCandidate]:
    """Turns a BitSearch result page into candidates; cards without a magnet are skipped."""
    soup = BeautifulSoup(html, "lxml")
    results: list[TorrentCandidate] = []
    seen_hashes: set[str] = set()

    for card in soup.select("li.search-result"):
        if not isinstance(card, Tag):
            continue
        magnet_tag = card.select_one('a[href^="magnet:"]')
        magnet = magnet_tag.get("href") if isinstance(magnet_tag, Tag) else None
        if not isinstance(magnet, str):
            continue
        info_hash = extract_info_hash(magnet)
        if not info_hash or info_hash in seen_hashes:
            continue
        seen_hashes.add(info_hash)

        name = _card_title(card) or _name_from_magnet(magnet)
        if not name:
            continue

        stats = card.select_one(".stats")
        seeders, leechers, size_bytes = _card_stats(stats)
        category_tag = card.select_one(".category")
        category = (
            category_tag.get_text(strip=True) if isinstance(category_tag, Tag) else None
        )

        results.append(
            TorrentCandidate(
                name=name,
                info_hash=info_hash,
                source_provider=SourceProvider.BITSEARCH,
                seeders=seeders,
                leechers=leechers,
                size_bytes=size_bytes,
                category=category or None,
                magnet_uri=build_magnet(info_hash, name, magnet),
            )
        )
    return results


def _card_title(card: Tag) -> str | None:
    title_tag = card.select_one("h5.title a") or card.select_one(".title a")
    if not isinstance(title_tag, Tag):
        return None
    text = title_tag.get_text(" ", strip=True)
    return _SITE_PREFIX.sub("", text) or None


def _name_from_magnet(magnet: str) -> str | None:
    query = urllib.parse.urlparse(magnet).query
    names = urllib.parse.parse_qs(query).get("dn")
    if not names:
        return None
    return _SITE_PREFIX.sub("", names[0]).strip() or None


def _card_stats(stats: Tag | None) -> tuple[int, int, int]:
    if not isinstance(stats, Tag):
        return 0, 0, 0

    seeders = leechers = 0
    for font in stats.find_all("font"):
        if not isinstance(font, Tag):
            continue
        color = str(font.get("color", "")).lower()
        if color == _SEEDER_COLOR:
            seeders = safe_int(font.get_text(strip=True).replace(",", ""))
        elif color == _LEECHER_COLOR:
            leechers = safe_int(font.get_text(strip=True).replace(",", ""))

    size_match = _SIZE_TEXT.search(stats.get_text(" ", strip=True))
    size_bytes = parse_size_to_bytes(size_match.group(0)) if size_match else 0
    return seeders, leechers, size_bytes
