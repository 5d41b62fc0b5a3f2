from .apibay import search_apibay
from .bitsearch import search_bitsearch
from .eztv import search_eztv
from .torrents_csv import search_torrents_csv
from .yts import search_yts

__all__ = [
    "search_apibay",
    "search_bitsearch",
    "search_eztv",
    "search_torrents_csv",
    "search_yts",
]
