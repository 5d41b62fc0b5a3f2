from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any

from .utils import build_magnet, safe_int


class SourceProvider(str, enum.Enum):
    """Originating adapter of a torrent candidate."""

    APIBAY = "APIBay"
    YTS = "YTS"
    EZTV = "EZTV"
    TORRENTS_CSV = "TorrentsCSV"
    BITSEARCH = "BitSearch"


class MediaKind(str, enum.Enum):
    MOVIE = "movie"
    SERIES = "series"


class StreamStatus(str, enum.Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


@dataclass
class TorrentCandidate:
    """A provider-agnostic torrent search result.

    Attributes:
        name: Release title with quality/codec tags as free text.
        info_hash: Lower-case hex hash; the identity of the content.
        seeders: Seeder count reported by the provider (0 when unknown).
        leechers: Leecher count reported by the provider (0 when unknown).
        size_bytes: Total size in bytes (0 when unknown).
        source_provider: Adapter that produced the candidate.
        category: Optional provider category.
        imdb_id: Optional IMDb cross-reference.
        magnet_uri: Magnet link carrying the fallback tracker list.
        score: Ranking score assigned by the filter stage.
    """

    name: str
    info_hash: str
    source_provider: SourceProvider
    seeders: int = 0
    leechers: int = 0
    size_bytes: int = 0
    category: str | None = None
    imdb_id: str | None = None
    magnet_uri: str = ""
    score: float = 0.0

    def __post_init__(self) -> None:
        self.name = str(self.name or "")
        self.info_hash = str(self.info_hash or "").strip().lower()
        self.seeders = safe_int(self.seeders)
        self.leechers = safe_int(self.leechers)
        self.size_bytes = safe_int(self.size_bytes)
        if not self.magnet_uri:
            self.magnet_uri = build_magnet(self.info_hash, self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "infoHash": self.info_hash,
            "seeders": self.seeders,
            "leechers": self.leechers,
            "sizeBytes": self.size_bytes,
            "source": self.source_provider.value,
            "category": self.category,
            "imdbId": self.imdb_id,
            "magnet": self.magnet_uri,
            "score": self.score,
        }


@dataclass(frozen=True)
class FileChoice:
    name: str
    index: int
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "index": self.index, "size": self.size}


@dataclass(frozen=True)
class FileSelection:
    """Returned by start() when the caller has to pick the file to play."""

    files: list[FileChoice]

    def to_dict(self) -> dict[str, Any]:
        return {"selectFiles": [choice.to_dict() for choice in self.files]}


@dataclass(frozen=True)
class ProgressEvent:
    identifier: str
    download_speed: int
    progress: float
    num_peers: int
    downloaded: int
    length: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "downloadSpeed": self.download_speed,
            "progress": self.progress,
            "numPeers": self.num_peers,
            "downloaded": self.downloaded,
            "length": self.length,
        }


@dataclass
class StreamSession:
    """Manager-side record of one magnet being streamed.

    The engine job and the HTTP server are owned by the session manager and
    never handed to callers.
    """

    identifier: str
    status: StreamStatus = StreamStatus.PENDING
    job: Any = None
    server: Any = None
    endpoint: str | None = None
    file_index: int | None = None
    error: BaseException | None = None
    progress_task: asyncio.Task | None = None
    metadata_task: asyncio.Task | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(frozen=True)
class SubtitleItem:
    id: str
    lang: str
    name: str
    url: str
    rating: int
    provider: str
    imdb_id: str | None = None


@dataclass(frozen=True)
class TitleMatch:
    id: str
    title: str
    year: str
    image: str
    kind: str | None = None
