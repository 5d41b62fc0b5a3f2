# prismo/services/torrent_engine.py

import asyncio
import os
import time
from typing import Any

import libtorrent as lt

from ..config import (
    DEFAULT_DHT_BOOTSTRAP_NODES,
    DEFAULT_LISTEN_INTERFACES,
    METADATA_POLL_INTERVAL,
    PIECE_POLL_INTERVAL,
    SHUTDOWN_TIMEOUT,
    logger,
)
from ..errors import DuplicateTorrentError, TorrentEngineError
from ..models import FileChoice
from ..utils import extract_info_hash

# Milliseconds; pieces a player is waiting on are requested first.
_STREAM_PIECE_DEADLINE = 0


def _info_hash_of(params: Any) -> Any:
    """The v1 hash of parsed magnet params, across libtorrent 1.2 and 2.0."""
    info_hashes = getattr(params, "info_hashes", None)
    if info_hashes is not None:
        return info_hashes.v1
    return params.info_hash


def _read_file_range(path: str, offset: int, length: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(length)


class TorrentJob:
    """One torrent inside the engine, addressed through its libtorrent handle."""

    def __init__(self, handle: Any, save_path: str) -> None:
        self.handle = handle
        self.save_path = save_path

    @property
    def info_hash(self) -> str:
        return str(_info_hash_of(self.handle.status())).lower()

    def is_valid(self) -> bool:
        return bool(self.handle.is_valid())

    def status(self) -> Any:
        return self.handle.status()

    async def wait_for_metadata(
        self, poll_interval: float = METADATA_POLL_INTERVAL
    ) -> None:
        """
        Waits until the swarm delivered the metadata. There is no timeout: a
        torrent without peers waits until the caller gives up and stops it.
        """
        while True:
            if not self.handle.is_valid():
                raise TorrentEngineError("Torrent was removed before metadata arrived.")
            status = self.handle.status()
            error = getattr(status, "errc", None)
            if error is not None and error.value() != 0:
                raise TorrentEngineError(error.message())
            if status.has_metadata:
                return
            await asyncio.sleep(poll_interval)

    def files(self) -> list[FileChoice]:
        ti = self.handle.torrent_file()
        if ti is None:
            return []
        storage = ti.files()
        return [
            FileChoice(
                name=storage.file_path(index),
                index=index,
                size=storage.file_size(index),
            )
            for index in range(storage.num_files())
        ]

    def file_path(self, file_index: int) -> str:
        storage = self.handle.torrent_file().files()
        return os.path.join(self.save_path, storage.file_path(file_index))

    async def read(self, file_index: int, offset: int, length: int) -> bytes:
        """
        Reads a byte range of one file, first waiting for every piece that
        backs it. Missing pieces get a deadline so they are fetched next.
        """
        ti = self.handle.torrent_file()
        first_piece = ti.map_file(file_index, offset, 1).piece
        last_piece = ti.map_file(file_index, offset + max(length, 1) - 1, 1).piece
        pieces = range(first_piece, last_piece + 1)

        for piece in pieces:
            if not self.handle.have_piece(piece):
                self.handle.set_piece_deadline(piece, _STREAM_PIECE_DEADLINE)

        while not all(self.handle.have_piece(piece) for piece in pieces):
            if not self.handle.is_valid():
                raise TorrentEngineError("Torrent was removed while streaming.")
            await asyncio.sleep(PIECE_POLL_INTERVAL)

        return await asyncio.to_thread(
            _read_file_range, self.file_path(file_index), offset, length
        )


class TorrentEngine:
    """
    The process-wide libtorrent session. Jobs are found by info hash, so two
    magnets for the same content share one job.
    """

    def __init__(
        self,
        save_path: str,
        listen_interfaces: str = DEFAULT_LISTEN_INTERFACES,
        dht_bootstrap_nodes: str = DEFAULT_DHT_BOOTSTRAP_NODES,
        upload_limit: int = 0,
    ) -> None:
        self.save_path = save_path
        os.makedirs(save_path, exist_ok=True)
        logger.info("Creating global libtorrent session for the application.")
        self._session = lt.session(
            {
                "listen_interfaces": listen_interfaces,
                "dht_bootstrap_nodes": dht_bootstrap_nodes,
                "upload_rate_limit": max(int(upload_limit), 0),
            }
        )

    def _parse(self, identifier: str) -> Any:
        try:
            params = lt.parse_magnet_uri(identifier)
        except RuntimeError as exc:
            raise TorrentEngineError(f"Invalid magnet link: {exc}") from exc
        params.save_path = self.save_path
        params.storage_mode = lt.storage_mode_t.storage_mode_sparse
        params.flags |= lt.torrent_flags.sequential_download
        return params

    def find(self, identifier: str) -> TorrentJob | None:
        if self._session is None:
            return None
        params = self._parse(identifier)
        handle = self._session.find_torrent(_info_hash_of(params))
        if handle is not None and handle.is_valid():
            return TorrentJob(handle, self.save_path)
        return None

    def add(self, identifier: str) -> TorrentJob:
        if self._session is None:
            raise TorrentEngineError("Torrent engine has been destroyed.")
        params = self._parse(identifier)
        info_hash = str(_info_hash_of(params)).lower() or (
            extract_info_hash(identifier) or ""
        )
        existing = self._session.find_torrent(_info_hash_of(params))
        if existing is not None and existing.is_valid():
            raise DuplicateTorrentError(info_hash)
        try:
            handle = self._session.add_torrent(params)
        except RuntimeError as exc:
            message = str(exc).lower()
            if "duplicate" in message or "already" in message:
                raise DuplicateTorrentError(info_hash) from exc
            raise TorrentEngineError(str(exc)) from exc
        logger.info(f"[STREAM] Added torrent {info_hash} to the engine.")
        return TorrentJob(handle, self.save_path)

    def remove(self, job: TorrentJob) -> None:
        if self._session is None or not job.is_valid():
            return
        self._session.remove_torrent(job.handle)

    def torrents(self) -> list[TorrentJob]:
        if self._session is None:
            return []
        return [
            TorrentJob(handle, self.save_path)
            for handle in self._session.get_torrents()
            if handle.is_valid()
        ]

    def set_upload_limit(self, bytes_per_sec: int) -> None:
        """Applies to every current and future job; 0 means unlimited."""
        if self._session is None:
            return
        limit = max(int(bytes_per_sec), 0)
        self._session.apply_settings({"upload_rate_limit": limit})
        logger.info(f"[STREAM] Upload limit set to {limit} B/s.")

    async def wait_idle(self, timeout: float = SHUTDOWN_TIMEOUT) -> bool:
        """Waits until removed jobs are released. Returns False on timeout."""
        if self._session is None:
            return True
        deadline = time.monotonic() + timeout
        while self._session.get_torrents() and time.monotonic() < deadline:
            await asyncio.sleep(0.1)
        return not self._session.get_torrents()

    async def destroy(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Removes every job and waits for the session to release them."""
        if self._session is None:
            return
        session = self._session
        for handle in session.get_torrents():
            if handle.is_valid():
                session.remove_torrent(handle)
        session.pause()

        if not await self.wait_idle(timeout):
            logger.warning("[STREAM] Engine still held torrents at shutdown.")

        self._session = None
        logger.info("[STREAM] Torrent engine destroyed.")
