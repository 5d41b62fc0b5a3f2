# prismo/config.py

import configparser
import logging
import os
from typing import Any

# --- Constants ---
STREAM_HOST = "127.0.0.1"
PROGRESS_INTERVAL = 1.0
METADATA_POLL_INTERVAL = 0.5
PIECE_POLL_INTERVAL = 0.2
SHUTDOWN_TIMEOUT = 10.0
PROVIDER_TIMEOUT = 15
CONFIG_FILE = "config.ini"
SETTINGS_FILE = "settings.json"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Order matters: magnets are compared as strings by the session manager.
FALLBACK_TRACKERS = [
    "udp://tracker.coppersurfer.tk:6969/announce",
    "udp://tracker.openbittorrent.com:80",
    "udp://tracker.opentrackr.org:1337",
    "udp://tracker.leechers-paradise.org:6969",
    "udp://tracker.dler.org:6969/announce",
    "udp://opentracker.i2p.rocks:6969/announce",
    "udp://47.ip-51-68-199.eu:6969/announce",
]

VIDEO_EXTENSIONS = [
    ".mp4",
    ".mkv",
    ".avi",
    ".webm",
    ".mov",
    ".m4v",
    ".wmv",
    ".flv",
    ".ts",
    ".mpg",
    ".mpeg",
]
# A video file at least this fraction of the largest one is a playable candidate.
PLAUSIBLE_VIDEO_RATIO = 0.5

# --- Content filter ---
NSFW_KEYWORDS = [
    "porn",
    "xxx",
    "erotic",
    "adult",
    "sex",
    "hentai",
    "gay",
    "lesbian",
    "cuckold",
    "incest",
    "deepfake",
    "nude",
]
NSFW_CATEGORIES_APIBAY = ["adult", "porn", "xxx"]

# --- Scoring weights ---
LEECHER_WEIGHT = 0.1
PROVIDER_TRUST_BONUS = {
    "YTS": 40,
    "EZTV": 40,
    "APIBay": 20,
    "TorrentsCSV": 10,
    "BitSearch": 10,
}
RESOLUTION_BONUSES = {
    "2160p": 40,
    "1080p": 30,
    "720p": 20,
}
HEVC_BONUS = 25
CAM_PENALTY = 1000
SAMPLE_PENALTY = 200

# --- Defaults for the user settings file ---
DEFAULT_CACHE_LIMIT_GB = 10
DEFAULT_UPLOAD_LIMIT_KB = 0

DEFAULT_LISTEN_INTERFACES = "0.0.0.0:6881"
DEFAULT_DHT_BOOTSTRAP_NODES = (
    "router.utorrent.com:6881,router.bittorrent.com:6881,dht.transmissionbt.com:6881"
)

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def get_configuration(config_path: str = CONFIG_FILE) -> dict[str, Any]:
    """
    Reads engine and path settings from the optional config.ini file.

    Every value has a default, so a missing file yields a working
    configuration. The user data directory is created if it does not exist.
    """
    config = configparser.ConfigParser()
    if os.path.exists(config_path):
        config.read(config_path, encoding="utf-8")
        logger.info(f"[CONFIG] Loaded configuration from '{config_path}'.")
    else:
        logger.info(
            f"[CONFIG] Configuration file '{config_path}' not found. Using defaults."
        )

    engine_config = {
        "listen_interfaces": config.get(
            "engine", "listen_interfaces", fallback=DEFAULT_LISTEN_INTERFACES
        ).strip(),
        "dht_bootstrap_nodes": config.get(
            "engine", "dht_bootstrap_nodes", fallback=DEFAULT_DHT_BOOTSTRAP_NODES
        ).strip(),
    }

    user_data_dir = _resolve_user_data_dir(config)
    logger.info(f"[CONFIG] Resolved user data directory: {user_data_dir}")
    if not os.path.exists(user_data_dir):
        logger.info(f"Path '{user_data_dir}' not found. Creating it.")
        os.makedirs(user_data_dir)

    return {
        "engine": engine_config,
        "user_data_dir": user_data_dir,
        "settings_path": os.path.join(user_data_dir, SETTINGS_FILE),
    }


def default_downloads_path() -> str:
    """The shared download directory used when the settings name none."""
    return os.path.join(os.path.expanduser("~"), "Downloads", "PrismoPlayer")


def _resolve_user_data_dir(config: configparser.ConfigParser) -> str:
    configured = config.get("paths", "user_data_dir", fallback=None)
    if configured and configured.strip():
        return os.path.expanduser(configured.strip())
    return os.path.join(os.path.expanduser("~"), ".prismo")
