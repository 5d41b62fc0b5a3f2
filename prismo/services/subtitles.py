# prismo/services/subtitles.py

import asyncio
import base64
import io
import os
import re
import zipfile
from collections.abc import Iterable
from typing import Any

import httpx
from bs4 import BeautifulSoup
from thefuzz import fuzz

from ..config import PROVIDER_TIMEOUT, USER_AGENT, logger
from ..models import SubtitleItem
from .scrapers.eztv import imdb_numeric_id

YIFY_BASE_URL = "https://yifysubtitles.org"
OPENSUBTITLES_API_URL = "https://api.opensubtitles.com/api/v1"

PROVIDER_YIFY = "YIFY"
PROVIDER_OPENSUBTITLES = "OpenSubtitles"

MAX_PER_LANGUAGE = 5
_MAX_NAME_LENGTH = 40

LANGUAGE_CODES = {
    "english": "en",
    "turkish": "tr",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "portuguese": "pt",
    "dutch": "nl",
    "arabic": "ar",
    "russian": "ru",
}

_FORMAT_TAG = re.compile(r"\{\\?/?[iub]\d?\}")
_SRT_TIMESTAMP = re.compile(r"(\d{2}):(\d{2}):(\d{2}),(\d{3})")


def srt_to_vtt(srt: str) -> str:
    """Converts SubRip text to WebVTT."""
    body = srt.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")
    body = _FORMAT_TAG.sub("", body)
    body = _SRT_TIMESTAMP.sub(r"\1:\2:\3.\4", body)
    return "WEBVTT\n\n" + body


def decode_subtitle(data: bytes, lang: str) -> str:
    """
    Decodes raw subtitle bytes. UTF-8 first; legacy files fall back to the
    Windows code page of the language.
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    encoding = "cp1254" if lang == "tr" else "cp1252"
    try:
        return data.decode(encoding)
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _rank(items: list[SubtitleItem], release_name: str | None) -> list[SubtitleItem]:
    """Best match to the release first, then by rating."""
    if release_name:
        return sorted(
            items,
            key=lambda item: (
                fuzz.token_set_ratio(release_name.lower(), item.name.lower()),
                item.rating,
            ),
            reverse=True,
        )
    return sorted(items, key=lambda item: item.rating, reverse=True)


def _top_per_language(
    items: list[SubtitleItem], languages: Iterable[str], release_name: str | None
) -> list[SubtitleItem]:
    results = []
    for language in languages:
        code = LANGUAGE_CODES.get(language.lower(), language.lower()[:2])
        in_language = [item for item in items if item.lang == code]
        results.extend(_rank(in_language, release_name)[:MAX_PER_LANGUAGE])
    return results


def _shorten(name: str) -> str:
    if len(name) > _MAX_NAME_LENGTH:
        return name[: _MAX_NAME_LENGTH - 3] + "..."
    return name


# --- YIFY subtitles ---


async def list_subtitles(
    imdb_id: str,
    languages: Iterable[str] = ("english",),
    release_name: str | None = None,
) -> list[SubtitleItem]:
    """Lists YIFY subtitles for a movie, at most five per requested language."""
    languages = [language.lower() for language in languages]
    url = f"{YIFY_BASE_URL}/movie-imdb/{imdb_id}"
    logger.info(f"[SUBTITLES] Listing from: {url}")
    try:
        async with httpx.AsyncClient(
            timeout=PROVIDER_TIMEOUT, follow_redirects=True
        ) as client:
            response = await client.get(url, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            html = response.text
    except httpx.HTTPError as e:
        logger.error(f"[SUBTITLES] Request error listing '{imdb_id}': {e}")
        return []

    try:
        items = parse_listing_page(html, imdb_id, languages)
        results = _top_per_language(items, languages, release_name)
    except Exception as e:
        logger.error(f"[SUBTITLES] Failed to parse listing for '{imdb_id}': {e}")
        return []
    logger.info(
        f"[SUBTITLES] Found {len(items)} subtitles for '{imdb_id}'. "
        f"Returning {len(results)}."
    )
    return results


def parse_listing_page(
    html: str, imdb_id: str | None, languages: Iterable[str]
) -> list[SubtitleItem]:
    """Extracts the subtitle rows of a YIFY movie page in the given languages."""
    soup = BeautifulSoup(html, "lxml")
    wanted = list(languages)
    items: list[SubtitleItem] = []

    for row in soup.select("tbody tr"):
        lang_cell = row.select_one(".sub-lang")
        if lang_cell is None:
            continue
        language = lang_cell.get_text(strip=True).lower()
        matched = next((name for name in wanted if name in language), None)
        if matched is None:
            continue

        link = row.select_one(".download-cell a") or row.select_one(
            'a[href^="/subtitles/"]'
        )
        href = link.get("href") if link else None
        if not isinstance(href, str) or not href:
            continue
        full_link = href if href.startswith("http") else f"{YIFY_BASE_URL}{href}"

        rating_cell = row.select_one(".rating-cell")
        rating_text = rating_cell.get_text(strip=True) if rating_cell else ""
        rating_match = re.match(r"-?\d+", rating_text)
        rating = int(rating_match.group(0)) if rating_match else 0

        title_link = row.select_one('a[href^="/subtitles/"]')
        release = title_link.get_text(" ", strip=True) if title_link else ""
        release = re.sub(r"^subtitle\s+", "", release, flags=re.IGNORECASE).strip()
        if not release:
            release = f"{lang_cell.get_text(strip=True)} (Rating: {rating})"

        items.append(
            SubtitleItem(
                id=base64.urlsafe_b64encode(full_link.encode()).decode(),
                lang=LANGUAGE_CODES.get(matched, matched[:2]),
                name=_shorten(release),
                url=full_link,
                rating=rating,
                provider=PROVIDER_YIFY,
                imdb_id=imdb_id,
            )
        )
    return items


def find_zip_link(html: str) -> str | None:
    soup = BeautifulSoup(html, "lxml")
    link = soup.select_one("a.download-subtitle")
    href = link.get("href") if link else None
    if not href:
        for anchor in soup.find_all("a", href=True):
            if anchor["href"].endswith(".zip"):
                href = anchor["href"]
                break
    if not isinstance(href, str) or not href:
        return None
    return href if href.startswith("http") else f"{YIFY_BASE_URL}{href}"


def extract_srt(archive: bytes) -> bytes | None:
    """Raw bytes of the first .srt file in a ZIP archive."""
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        for name in zf.namelist():
            if name.lower().endswith(".srt"):
                return zf.read(name)
    return None


async def _fetch_yify_srt(client: httpx.AsyncClient, item: SubtitleItem) -> bytes | None:
    logger.info(f"[SUBTITLES] Fetching detail page: {item.url}")
    response = await client.get(item.url, headers={"User-Agent": USER_AGENT})
    response.raise_for_status()

    zip_link = find_zip_link(response.text)
    if zip_link is None:
        logger.error("[SUBTITLES] ZIP link not found on detail page.")
        return None

    logger.info(f"[SUBTITLES] Downloading ZIP: {zip_link}")
    response = await client.get(zip_link, headers={"User-Agent": USER_AGENT})
    response.raise_for_status()
    try:
        srt = extract_srt(response.content)
    except zipfile.BadZipFile as e:
        logger.error(f"[SUBTITLES] Downloaded file is not a ZIP archive: {e}")
        return None
    if srt is None:
        logger.error("[SUBTITLES] SRT not found in zip.")
    return srt


# --- OpenSubtitles ---


async def list_opensubtitles(
    imdb_id: str,
    api_key: str | None,
    languages: Iterable[str] = ("english",),
    release_name: str | None = None,
) -> list[SubtitleItem]:
    """Lists OpenSubtitles results. Without an API key nothing is requested."""
    if not api_key:
        logger.info("[SUBTITLES] No OpenSubtitles API key configured. Skipping.")
        return []
    numeric_id = imdb_numeric_id(imdb_id)
    if numeric_id is None:
        return []

    languages = [language.lower() for language in languages]
    codes = [LANGUAGE_CODES.get(name, name[:2]) for name in languages]
    params = {"imdb_id": numeric_id, "languages": ",".join(sorted(set(codes)))}
    try:
        async with httpx.AsyncClient(
            timeout=PROVIDER_TIMEOUT, follow_redirects=True
        ) as client:
            response = await client.get(
                f"{OPENSUBTITLES_API_URL}/subtitles",
                params=params,
                headers=_opensubtitles_headers(api_key),
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as e:
        logger.error(f"[SUBTITLES] OpenSubtitles request error for '{imdb_id}': {e}")
        return []
    except ValueError as e:
        logger.error(f"[SUBTITLES] OpenSubtitles returned invalid JSON: {e}")
        return []

    entries = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        return []
    items = [
        item
        for item in (_opensubtitles_item(entry, imdb_id) for entry in entries)
        if item is not None
    ]
    return _top_per_language(items, languages, release_name)


def _opensubtitles_headers(api_key: str) -> dict[str, str]:
    return {
        "Api-Key": api_key,
        "User-Agent": "PrismoPlayer v1.0",
        "Accept": "application/json",
    }


def _opensubtitles_item(entry: Any, imdb_id: str) -> SubtitleItem | None:
    attributes = entry.get("attributes") if isinstance(entry, dict) else None
    if not isinstance(attributes, dict):
        return None
    files = attributes.get("files") or []
    if not files or not isinstance(files[0], dict) or "file_id" not in files[0]:
        return None
    file_id = str(files[0]["file_id"])
    release = attributes.get("release") or files[0].get("file_name") or file_id
    try:
        rating = int(float(attributes.get("ratings") or 0))
    except (TypeError, ValueError):
        rating = 0
    return SubtitleItem(
        id=file_id,
        lang=str(attributes.get("language") or "").lower()[:2],
        name=_shorten(str(release)),
        url=f"{OPENSUBTITLES_API_URL}/download",
        rating=rating,
        provider=PROVIDER_OPENSUBTITLES,
        imdb_id=imdb_id,
    )


async def _fetch_opensubtitles_srt(
    client: httpx.AsyncClient, item: SubtitleItem, api_key: str | None
) -> bytes | None:
    if not api_key:
        logger.error("[SUBTITLES] OpenSubtitles download needs an API key.")
        return None
    response = await client.post(
        item.url,
        json={"file_id": int(item.id)},
        headers=_opensubtitles_headers(api_key),
    )
    response.raise_for_status()
    link = response.json().get("link")
    if not link:
        logger.error("[SUBTITLES] OpenSubtitles returned no download link.")
        return None
    response = await client.get(link)
    response.raise_for_status()
    return response.content


# --- Download ---


async def download_subtitle(
    item: SubtitleItem, dest_dir: str, api_key: str | None = None
) -> str | None:
    """
    Downloads a subtitle, converts it to WebVTT and writes it to dest_dir.
    Returns the path of the .vtt file, or None on any failure.
    """
    try:
        async with httpx.AsyncClient(
            timeout=PROVIDER_TIMEOUT, follow_redirects=True
        ) as client:
            if item.provider == PROVIDER_OPENSUBTITLES:
                raw = await _fetch_opensubtitles_srt(client, item, api_key)
            else:
                raw = await _fetch_yify_srt(client, item)
    except httpx.HTTPError as e:
        logger.error(f"[SUBTITLES] Download failed: {e}")
        return None
    except ValueError as e:
        logger.error(f"[SUBTITLES] Invalid response while downloading: {e}")
        return None

    if raw is None:
        return None

    vtt = srt_to_vtt(decode_subtitle(raw, item.lang))
    safe_id = re.sub(r"[^A-Za-z0-9_-]", "", item.id)[:80]
    file_path = os.path.join(dest_dir, f"{item.imdb_id or 'unknown'}-{safe_id}.vtt")

    def _write() -> None:
        os.makedirs(dest_dir, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(vtt)

    await asyncio.to_thread(_write)
    logger.info(f"[SUBTITLES] Saved subtitle to '{file_path}'.")
    return file_path
