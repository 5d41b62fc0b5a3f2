# prismo/services/session_manager.py

import asyncio
import os
import re
from collections.abc import Callable, Sequence
from typing import Any

from ..config import (
    PLAUSIBLE_VIDEO_RATIO,
    PROGRESS_INTERVAL,
    STREAM_HOST,
    VIDEO_EXTENSIONS,
    logger,
)
from ..errors import (
    DuplicateTorrentError,
    InvalidFileIndexError,
    StreamStoppedError,
    TorrentEngineError,
)
from ..models import FileChoice, FileSelection, StreamSession, StreamStatus
from .cache_manager import CacheManager
from .progress import ProgressChannel, ProgressReporter
from .stream_server import StreamServer

_SAMPLE_TOKEN = re.compile(r"(?i)(?:^|[^a-z0-9])sample(?:[^a-z0-9]|$)")


def _is_video(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in VIDEO_EXTENSIONS


def select_stream_file(
    files: Sequence[FileChoice], file_index: int | None = None
) -> int | FileSelection:
    """
    Picks the file to serve from a torrent's file list.

    A valid hint always wins. Otherwise a single plausible video file is
    chosen; several plausible ones are handed back as a FileSelection so the
    caller can ask the user. Without any video file the largest file is used.
    """
    if not files:
        raise TorrentEngineError("Torrent contains no files.")

    if file_index is not None:
        if not any(choice.index == file_index for choice in files):
            raise InvalidFileIndexError(
                f"File index {file_index} is out of range (0-{len(files) - 1})."
            )
        return file_index

    videos = [choice for choice in files if _is_video(choice.name)]
    if not videos:
        return max(files, key=lambda choice: (choice.size, -choice.index)).index

    largest_size = max(choice.size for choice in videos)
    plausible = [
        choice
        for choice in videos
        if not _SAMPLE_TOKEN.search(choice.name)
        and choice.size >= PLAUSIBLE_VIDEO_RATIO * largest_size
    ]
    if not plausible:
        return max(videos, key=lambda choice: (choice.size, -choice.index)).index
    if len(plausible) == 1:
        return plausible[0].index
    return FileSelection(files=sorted(videos, key=lambda choice: choice.index))


class SessionManager:
    """
    Maps magnet identifiers to engine jobs and local HTTP endpoints, and keeps
    at most one of them marked as the active stream.
    """

    def __init__(
        self,
        engine: Any,
        cache_manager: CacheManager | None = None,
        progress_channel: ProgressChannel | None = None,
        host: str = STREAM_HOST,
        progress_interval: float = PROGRESS_INTERVAL,
        server_factory: Callable[..., Any] = StreamServer,
    ) -> None:
        self.engine = engine
        self.cache_manager = cache_manager
        self.progress = progress_channel or ProgressChannel()
        self.host = host
        self.progress_interval = progress_interval
        self._server_factory = server_factory
        self._sessions: dict[str, StreamSession] = {}
        self.active_identifier: str | None = None

    # --- Queries ---

    def status(self, identifier: str) -> StreamStatus | None:
        session = self._sessions.get(identifier)
        return session.status if session else None

    def sessions(self) -> list[str]:
        return list(self._sessions)

    def _is_current(self, session: StreamSession) -> bool:
        return self._sessions.get(session.identifier) is session

    def _ensure_current(self, session: StreamSession) -> None:
        if not self._is_current(session):
            raise StreamStoppedError(
                f"Stream {session.identifier[:60]} was stopped before it was ready."
            )

    # --- Lifecycle ---

    async def start(
        self, identifier: str, file_index: int | None = None
    ) -> str | FileSelection:
        """
        Starts or resumes streaming a magnet.

        Returns the endpoint URL, or a FileSelection when the torrent holds
        several plausible videos and no file index was given. There is no
        timeout here; a torrent without peers waits until the caller stops it.
        """
        previous = self.active_identifier
        # Claimed before the first await so a concurrent start() sees it.
        self.active_identifier = identifier
        if previous is not None and previous != identifier:
            logger.info(f"[STREAM] Replacing active stream {previous[:60]}.")
            await self.stop(previous)
            if self.active_identifier != identifier:
                raise StreamStoppedError(
                    f"Stream {identifier[:60]} was replaced before it started."
                )

        session = self._sessions.get(identifier)
        if session is None:
            session = StreamSession(identifier=identifier)
            self._sessions[identifier] = session

        async with session.lock:
            self._ensure_current(session)
            if session.status is StreamStatus.READY and session.server is not None:
                return self._resume(session, file_index)
            try:
                return await self._prepare(session, file_index)
            except StreamStoppedError:
                raise
            except Exception as exc:
                if self._is_current(session):
                    session.status = StreamStatus.ERROR
                    session.error = exc
                logger.error(f"[STREAM] Failed to start stream: {exc}")
                raise

    def _resume(self, session: StreamSession, file_index: int | None) -> str:
        if file_index is not None and file_index != session.file_index:
            select_stream_file(session.job.files(), file_index)
            session.file_index = file_index
            session.endpoint = session.server.url_for(file_index)
        logger.info(f"[STREAM] Resuming stream at {session.endpoint}.")
        return session.endpoint

    def _attach(self, identifier: str) -> Any:
        job = self.engine.find(identifier)
        if job is not None:
            logger.info("[STREAM] Attaching to torrent already held by the engine.")
            return job
        try:
            return self.engine.add(identifier)
        except DuplicateTorrentError as exc:
            logger.info(f"[STREAM] {exc}; attaching to the existing job.")
            job = self.engine.find(identifier)
            if job is None:
                raise TorrentEngineError(str(exc)) from exc
            return job

    async def _prepare(
        self, session: StreamSession, file_index: int | None
    ) -> str | FileSelection:
        session.status = StreamStatus.PENDING
        session.error = None

        if session.job is None or not session.job.is_valid():
            session.job = self._attach(session.identifier)
        job = session.job

        if session.progress_task is None or session.progress_task.done():
            session.progress_task = asyncio.create_task(self._track_progress(session))

        session.metadata_task = asyncio.create_task(job.wait_for_metadata())
        try:
            await session.metadata_task
        except (asyncio.CancelledError, TorrentEngineError):
            if not self._is_current(session):
                raise StreamStoppedError(
                    f"Stream {session.identifier[:60]} was stopped before it was ready."
                ) from None
            raise
        finally:
            session.metadata_task = None
        self._ensure_current(session)

        selection = select_stream_file(job.files(), file_index)
        if isinstance(selection, FileSelection):
            logger.info(
                f"[STREAM] {len(selection.files)} playable files found; "
                "waiting for the caller to choose one."
            )
            return selection

        server = session.server
        if server is None:
            server = self._server_factory(job, host=self.host)
            await server.start()
            if not self._is_current(session):
                await server.stop()
                self._ensure_current(session)
            session.server = server

        session.file_index = selection
        session.endpoint = server.url_for(selection)
        session.status = StreamStatus.READY
        logger.info(f"[STREAM] Stream ready at {session.endpoint}.")
        return session.endpoint

    async def _track_progress(self, session: StreamSession) -> None:
        reporter = ProgressReporter(
            session.identifier, self.progress, interval=self.progress_interval
        )
        try:
            while self._is_current(session) and session.job.is_valid():
                reporter.report(session.job.status())
                await asyncio.sleep(self.progress_interval)
        except RuntimeError as exc:
            # libtorrent raises on handles removed between the checks
            logger.debug(f"[STREAM] Progress tracking ended: {exc}")

    async def stop(self, identifier: str) -> None:
        """Tears down the endpoint and removes the engine job; files stay on disk."""
        session = self._sessions.pop(identifier, None)
        if self.active_identifier == identifier:
            self.active_identifier = None

        job = session.job if session is not None else None
        if session is not None:
            await self._teardown(session)
        if job is None:
            try:
                job = self.engine.find(identifier)
            except TorrentEngineError:
                job = None
        if job is not None:
            self.engine.remove(job)
            logger.info(f"[STREAM] Removed torrent {identifier[:60]} from the engine.")

    async def _teardown(self, session: StreamSession) -> None:
        if session.metadata_task is not None:
            session.metadata_task.cancel()
        if session.progress_task is not None:
            session.progress_task.cancel()
            await asyncio.gather(session.progress_task, return_exceptions=True)
            session.progress_task = None
        if session.server is not None:
            await session.server.stop()
            session.server = None
        session.endpoint = None

    async def stop_active(self) -> None:
        if self.active_identifier is not None:
            await self.stop(self.active_identifier)

    async def stop_all(self) -> None:
        for identifier in list(self._sessions):
            await self.stop(identifier)
        # Jobs the engine still holds without a session record.
        for job in self.engine.torrents():
            self.engine.remove(job)

    def update_bandwidth_limit(self, bytes_per_sec: int) -> None:
        self.engine.set_upload_limit(max(int(bytes_per_sec), 0))

    async def clear_cache(self) -> list[str]:
        """Stops every stream, then deletes the whole download cache."""
        await self.stop_all()
        if not await self.engine.wait_idle():
            logger.warning("[CACHE] Engine still held torrents; some files may stay locked.")
        if self.cache_manager is None:
            return []
        return await self.cache_manager.clear()

    async def shutdown(self) -> None:
        """
        Stops every endpoint, destroys the engine and only then enforces the
        cache quota, once no job holds files open any more.
        """
        logger.info("[STREAM] Shutting down streaming core.")
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self.active_identifier = None
        for session in sessions:
            await self._teardown(session)

        await self.engine.destroy()
        self.progress.close()

        if self.cache_manager is not None:
            await self.cache_manager.enforce_quota()
