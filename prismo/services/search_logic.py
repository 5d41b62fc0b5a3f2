# prismo/services/search_logic.py

import asyncio
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from ..config import logger
from ..models import MediaKind, SourceProvider, TorrentCandidate
from . import scrapers
from .filtering import is_nsfw, score_candidate

# --- Type Aliases for Readability ---
ProviderCoroutine = Coroutine[Any, Any, list[TorrentCandidate]]
ProviderFunction = Callable[..., ProviderCoroutine]


# --- Search Orchestration ---


def _build_provider_plan(
    imdb_id: str | None, kind: str | None
) -> list[tuple[SourceProvider, ProviderFunction]]:
    """Chooses the providers worth asking for this query, in a fixed order."""
    plan: list[tuple[SourceProvider, ProviderFunction]] = [
        (SourceProvider.APIBAY, scrapers.search_apibay)
    ]
    if kind != MediaKind.SERIES.value:
        plan.append((SourceProvider.YTS, scrapers.search_yts))
    if kind != MediaKind.MOVIE.value and imdb_id:
        plan.append((SourceProvider.EZTV, scrapers.search_eztv))
    plan.append((SourceProvider.TORRENTS_CSV, scrapers.search_torrents_csv))
    plan.append((SourceProvider.BITSEARCH, scrapers.search_bitsearch))
    return plan


async def _run_provider(
    provider: SourceProvider,
    search: ProviderFunction,
    query: str,
    imdb_id: str | None,
    kind: str | None,
) -> list[TorrentCandidate]:
    # Adapters swallow their own failures; this also covers one that raises
    # before returning a coroutine.
    try:
        results = await search(query, imdb_id, kind)
    except Exception as exc:
        logger.error(
            f"[SEARCH] Provider '{provider.value}' failed: {exc}", exc_info=True
        )
        return []
    if not isinstance(results, list):
        logger.warning(
            f"[SEARCH] Provider '{provider.value}' returned {type(results)}; ignoring."
        )
        return []
    return results


async def get_ranked_sources(
    query: str, imdb_id: str | None = None, kind: str | None = None
) -> list[TorrentCandidate]:
    """
    Coordinates searches across all applicable providers concurrently.

    Every provider task is created before any is awaited; results are merged
    in provider order once all of them have finished, then filtered, scored,
    de-duplicated and sorted. An empty list is a valid outcome.
    """
    query = (query or "").strip()
    if not query and not imdb_id:
        logger.info("[SEARCH] Empty query and no IMDb id. Nothing to search.")
        return []

    plan = _build_provider_plan(imdb_id, kind)
    logger.info(
        f"[SEARCH] Aggregating search for '{query}' (imdb={imdb_id}, kind={kind}) "
        f"across {', '.join(provider.value for provider, _ in plan)}."
    )

    tasks = [
        asyncio.create_task(_run_provider(provider, search, query, imdb_id, kind))
        for provider, search in plan
    ]
    results_per_provider = await asyncio.gather(*tasks)

    counts = ", ".join(
        f"{provider.value} ({len(results)})"
        for (provider, _), results in zip(plan, results_per_provider)
    )
    logger.info(f"[SEARCH] Found: {counts}")

    all_results = [item for sublist in results_per_provider for item in sublist]
    ranked = rank_candidates(all_results)
    logger.info(
        f"[SEARCH] Aggregation complete. Returning {len(ranked)} ranked results."
    )
    return ranked


def rank_candidates(candidates: Iterable[TorrentCandidate]) -> list[TorrentCandidate]:
    """
    Filters, scores, de-duplicates by info hash and sorts candidates.

    A duplicate replaces the stored candidate only with a strictly higher
    score, so on a tie the first one seen wins. The final sort is stable.
    """
    unique: dict[str, TorrentCandidate] = {}
    for candidate in candidates:
        if not candidate.info_hash:
            continue
        if is_nsfw(candidate):
            logger.debug(f"[SEARCH] Dropping filtered result '{candidate.name}'.")
            continue

        candidate.score = score_candidate(candidate)

        stored = unique.get(candidate.info_hash)
        if stored is None or candidate.score > stored.score:
            unique[candidate.info_hash] = candidate

    # dict keeps first-insertion order, which the stable sort preserves on ties
    return sorted(unique.values(), key=lambda item: item.score, reverse=True)


async def search_torrent(query: str, quality: str | None = None) -> str | None:
    """Returns the best magnet for a query, preferring a given quality tag."""
    results = await get_ranked_sources(query)
    if not results:
        return None

    if quality:
        quality_lower = quality.lower()
        for candidate in results:
            if quality_lower in candidate.name.lower():
                return candidate.magnet_uri

    return results[0].magnet_uri
