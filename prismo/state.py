# prismo/state.py

import json
import os
from dataclasses import dataclass
from typing import Any

from .config import (
    DEFAULT_CACHE_LIMIT_GB,
    DEFAULT_UPLOAD_LIMIT_KB,
    default_downloads_path,
    logger,
)
from .utils import safe_int

# JSON key -> attribute name
_SETTINGS_KEYS = {
    "cacheLimitGB": "cache_limit_gb",
    "uploadLimitKB": "upload_limit_kb",
    "downloadsPath": "downloads_path",
    "openSubtitlesApiKey": "opensubtitles_api_key",
    "tmdbApiKey": "tmdb_api_key",
}


@dataclass
class Settings:
    """User settings persisted as settings.json in the user data directory."""

    cache_limit_gb: int = DEFAULT_CACHE_LIMIT_GB
    upload_limit_kb: int = DEFAULT_UPLOAD_LIMIT_KB
    downloads_path: str = ""
    opensubtitles_api_key: str = ""
    tmdb_api_key: str = ""

    def __post_init__(self) -> None:
        self.cache_limit_gb = safe_int(self.cache_limit_gb)
        self.upload_limit_kb = safe_int(self.upload_limit_kb)
        if not self.downloads_path:
            self.downloads_path = default_downloads_path()

    @property
    def cache_limit_bytes(self) -> int:
        return self.cache_limit_gb * 1024**3

    @property
    def upload_limit_bytes_per_sec(self) -> int:
        """0 means unlimited."""
        return self.upload_limit_kb * 1024

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        known = {
            attribute: data[key]
            for key, attribute in _SETTINGS_KEYS.items()
            if key in data and data[key] is not None
        }
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, attribute) for key, attribute in _SETTINGS_KEYS.items()}


def load_settings(file_path: str) -> Settings:
    """Loads settings.json, falling back to defaults for anything missing."""
    if not os.path.exists(file_path):
        logger.info(f"[SETTINGS] '{file_path}' not found. Using default settings.")
        return Settings()

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error(
            f"[SETTINGS] Could not read or parse '{file_path}': {e}. Using defaults."
        )
        return Settings()

    if not isinstance(data, dict):
        logger.error(f"[SETTINGS] '{file_path}' does not hold an object. Using defaults.")
        return Settings()

    settings = Settings.from_dict(data)
    logger.info(f"[SETTINGS] Loaded settings from '{file_path}'.")
    return settings


def save_settings(file_path: str, changes: dict[str, Any]) -> Settings:
    """Merges changed keys into the stored settings and writes them back."""
    merged = load_settings(file_path).to_dict()
    merged.update(
        {key: value for key, value in changes.items() if key in _SETTINGS_KEYS}
    )
    settings = Settings.from_dict(merged)

    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=4)
    logger.info(f"[SETTINGS] Saved settings to '{file_path}'.")
    return settings

