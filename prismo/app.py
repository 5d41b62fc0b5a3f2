# prismo/app.py

import os
from typing import Any

from .config import CONFIG_FILE, get_configuration, logger
from .models import FileSelection, SubtitleItem, TitleMatch, TorrentCandidate
from .services import metadata, search_logic, subtitles
from .services.cache_manager import CacheManager
from .services.progress import ProgressChannel, ProgressSubscription
from .services.session_manager import SessionManager
from .services.torrent_engine import TorrentEngine
from .state import Settings, load_settings, save_settings


class PrismoApp:
    """
    Entry point for a player UI: search, streaming, progress and cache
    control over one shared engine and download directory.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        cache_manager: CacheManager,
        settings: Settings,
        settings_path: str | None = None,
        subtitles_dir: str | None = None,
    ) -> None:
        self.sessions = session_manager
        self.cache = cache_manager
        self.settings = settings
        self.settings_path = settings_path
        self.subtitles_dir = subtitles_dir or os.path.join(
            settings.downloads_path, "subtitles"
        )

    @classmethod
    def from_config(cls, config_path: str = CONFIG_FILE) -> "PrismoApp":
        """Builds the application from config.ini and the user's settings file."""
        config = get_configuration(config_path)
        settings = load_settings(config["settings_path"])

        engine = TorrentEngine(
            settings.downloads_path,
            listen_interfaces=config["engine"]["listen_interfaces"],
            dht_bootstrap_nodes=config["engine"]["dht_bootstrap_nodes"],
            upload_limit=settings.upload_limit_bytes_per_sec,
        )
        cache_manager = CacheManager(settings.downloads_path, settings.cache_limit_bytes)
        session_manager = SessionManager(
            engine, cache_manager=cache_manager, progress_channel=ProgressChannel()
        )
        return cls(
            session_manager,
            cache_manager,
            settings,
            settings_path=config["settings_path"],
            subtitles_dir=os.path.join(config["user_data_dir"], "subtitles"),
        )

    # --- Search ---

    async def search_sources(
        self, query: str, imdb_id: str | None = None, kind: str | None = None
    ) -> list[TorrentCandidate]:
        return await search_logic.get_ranked_sources(query, imdb_id, kind)

    async def search_titles(self, query: str) -> list[TitleMatch]:
        return await metadata.search_titles(query)

    # --- Streaming ---

    async def start_stream(
        self, identifier: str, file_index: int | None = None
    ) -> str | FileSelection:
        return await self.sessions.start(identifier, file_index)

    async def stop_stream(self, identifier: str) -> None:
        await self.sessions.stop(identifier)

    async def stop_active_stream(self) -> None:
        await self.sessions.stop_active()

    def progress_events(self, identifier: str | None = None) -> ProgressSubscription:
        """Subscribes to progress of one stream, or of every stream."""
        return self.sessions.progress.subscribe(identifier)

    # --- Settings and cache ---

    def update_bandwidth_limit(self, kilobytes_per_sec: int) -> None:
        """Caps upload for every current and future torrent; 0 lifts the cap."""
        self.sessions.update_bandwidth_limit(max(int(kilobytes_per_sec), 0) * 1024)

    async def clear_cache_now(self) -> list[str]:
        return await self.sessions.clear_cache()

    def apply_settings(self, changes: dict[str, Any]) -> Settings:
        """
        Stores changed settings and applies the ones that take effect live:
        the upload limit and the cache size limit.
        """
        if self.settings_path:
            self.settings = save_settings(self.settings_path, changes)
        else:
            merged = self.settings.to_dict()
            merged.update(changes)
            self.settings = Settings.from_dict(merged)

        self.sessions.update_bandwidth_limit(self.settings.upload_limit_bytes_per_sec)
        self.cache.limit_bytes = self.settings.cache_limit_bytes
        logger.info("[SETTINGS] Applied updated settings.")
        return self.settings

    # --- Subtitles ---

    async def list_subtitles(
        self,
        imdb_id: str,
        languages: tuple[str, ...] = ("english",),
        release_name: str | None = None,
    ) -> list[SubtitleItem]:
        """YIFY results followed by OpenSubtitles ones when an API key is set."""
        results = await subtitles.list_subtitles(imdb_id, languages, release_name)
        results += await subtitles.list_opensubtitles(
            imdb_id, self.settings.opensubtitles_api_key, languages, release_name
        )
        return results

    async def download_subtitle(self, item: SubtitleItem) -> str | None:
        return await subtitles.download_subtitle(
            item, self.subtitles_dir, api_key=self.settings.opensubtitles_api_key
        )

    async def shutdown(self) -> None:
        await self.sessions.shutdown()
