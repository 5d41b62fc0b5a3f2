# prismo/__main__.py

import argparse
import asyncio
import os

from prismo.app import PrismoApp
from prismo.config import CONFIG_FILE, get_configuration, logger
from prismo.models import FileSelection
from prismo.services.cache_manager import CacheManager
from prismo.services.metadata import search_titles
from prismo.services.search_logic import get_ranked_sources
from prismo.services.subtitles import list_subtitles
from prismo.state import load_settings
from prismo.utils import format_bytes

START_TIMEOUT = 60.0


async def _search(args: argparse.Namespace) -> int:
    results = await get_ranked_sources(args.query, args.imdb, args.type)
    if not results:
        print("No results.")
        return 1
    for candidate in results[: args.limit]:
        print(
            f"{candidate.score:8.1f} | {candidate.source_provider.value:<11} | "
            f"S:{candidate.seeders:<5} L:{candidate.leechers:<5} | "
            f"{format_bytes(candidate.size_bytes):>10} | {candidate.name}"
        )
        print(f"           {candidate.magnet_uri}")
    return 0


async def _titles(args: argparse.Namespace) -> int:
    matches = await search_titles(args.query)
    for match in matches:
        print(f"{match.id:<12} {match.year:<6} {match.kind or '-':<7} {match.title}")
    return 0 if matches else 1


async def _subtitles(args: argparse.Namespace) -> int:
    items = await list_subtitles(args.imdb_id, tuple(args.language))
    for item in items:
        print(f"[{item.lang}] {item.rating:>4} | {item.name} | {item.url}")
    return 0 if items else 1


async def _clear_cache(args: argparse.Namespace) -> int:
    config = get_configuration(args.config)
    settings = load_settings(config["settings_path"])
    cache = CacheManager(settings.downloads_path, settings.cache_limit_bytes)
    deleted = await cache.clear()
    print(f"Deleted {len(deleted)} entries from {settings.downloads_path}.")
    return 0


async def _stream(args: argparse.Namespace) -> int:
    app = PrismoApp.from_config(args.config)
    try:
        try:
            result = await asyncio.wait_for(
                app.start_stream(args.magnet, args.file_index), timeout=args.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Stream did not become ready within {args.timeout:.0f}s. Stopping it."
            )
            await app.stop_stream(args.magnet)
            return 1

        if isinstance(result, FileSelection):
            print("Several video files found. Re-run with --file-index:")
            for choice in result.files:
                print(f"  {choice.index:>3}  {format_bytes(choice.size):>10}  {choice.name}")
            await app.stop_stream(args.magnet)
            return 2

        print(f"Streaming at {result}")
        async for event in app.progress_events(args.magnet):
            print(
                f"\r{event.progress:6.1%}  {format_bytes(event.download_speed)}/s  "
                f"{event.num_peers} peers",
                end="",
                flush=True,
            )
        return 0
    finally:
        await app.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prismo", description="Search torrent sources and stream them locally."
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("PRISMO_CONFIG", CONFIG_FILE),
        help="Path to config.ini",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search every torrent provider")
    search.add_argument("query")
    search.add_argument("--imdb", default=None, help="IMDb id, e.g. tt0903747")
    search.add_argument("--type", choices=["movie", "series"], default=None)
    search.add_argument("--limit", type=int, default=10)
    search.set_defaults(handler=_search)

    stream = commands.add_parser("stream", help="Stream a magnet over local HTTP")
    stream.add_argument("magnet")
    stream.add_argument("--file-index", type=int, default=None)
    stream.add_argument("--timeout", type=float, default=START_TIMEOUT)
    stream.set_defaults(handler=_stream)

    titles = commands.add_parser("titles", help="Look up movie and series titles")
    titles.add_argument("query")
    titles.set_defaults(handler=_titles)

    subs = commands.add_parser("subtitles", help="List subtitles for an IMDb id")
    subs.add_argument("imdb_id")
    subs.add_argument(
        "--language", action="append", default=None, help="Repeatable; default english"
    )
    subs.set_defaults(handler=_subtitles)

    clear = commands.add_parser("clear-cache", help="Delete every downloaded torrent")
    clear.set_defaults(handler=_clear_cache)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "subtitles" and not args.language:
        args.language = ["english"]
    try:
        return asyncio.run(args.handler(args))
    except KeyboardInterrupt:
        logger.info("Interrupted. Shutting down.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
