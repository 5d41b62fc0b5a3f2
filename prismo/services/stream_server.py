# prismo/services/stream_server.py

import mimetypes
from typing import Any

from aiohttp import web

from ..config import STREAM_HOST, logger
from ..errors import StreamBindError

CHUNK_SIZE = 256 * 1024


class StreamServer:
    """
    Serves the files of one torrent job over loopback HTTP, one path per
    file index. Bound to an ephemeral port chosen by the OS.
    """

    def __init__(self, job: Any, host: str = STREAM_HOST) -> None:
        self.job = job
        self.host = host
        self.port: int | None = None
        self.app = web.Application()
        self.app.router.add_get("/{file_index}", self._handle_file)
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

    @property
    def running(self) -> bool:
        return self.runner is not None

    def url_for(self, file_index: int) -> str:
        return f"http://{self.host}:{self.port}/{file_index}"

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, 0)
        try:
            await self.site.start()
        except OSError as exc:
            await self.runner.cleanup()
            self.runner = None
            self.site = None
            raise StreamBindError(
                f"Could not bind stream server on {self.host}: {exc}"
            ) from exc
        self.port = self.runner.addresses[0][1]
        logger.info(f"[STREAM] Server listening on {self.host}:{self.port}.")

    async def stop(self) -> None:
        if self.runner is None:
            return
        runner = self.runner
        self.runner = None
        self.site = None
        await runner.cleanup()
        logger.info(f"[STREAM] Server on port {self.port} stopped.")

    async def _handle_file(self, request: web.Request) -> web.StreamResponse:
        try:
            file_index = int(request.match_info["file_index"])
        except ValueError:
            raise web.HTTPNotFound()

        files = self.job.files()
        if not 0 <= file_index < len(files):
            raise web.HTTPNotFound()
        choice = files[file_index]
        size = choice.size

        try:
            requested = request.http_range
        except ValueError:
            return _range_not_satisfiable(size)

        start, stop = requested.start, requested.stop
        partial = start is not None or stop is not None
        if start is None:
            start = 0
        elif start < 0:
            start = max(size + start, 0)
        stop = size if stop is None else min(stop, size)
        if partial and (start >= size or start >= stop):
            return _range_not_satisfiable(size)

        content_type = mimetypes.guess_type(choice.name)[0] or "application/octet-stream"
        response = web.StreamResponse(status=206 if partial else 200)
        response.headers["Accept-Ranges"] = "bytes"
        response.content_type = content_type
        response.content_length = stop - start
        if partial:
            response.headers["Content-Range"] = f"bytes {start}-{stop - 1}/{size}"
        await response.prepare(request)

        if request.method == "HEAD":
            return response

        offset = start
        try:
            while offset < stop:
                length = min(CHUNK_SIZE, stop - offset)
                chunk = await self.job.read(file_index, offset, length)
                if not chunk:
                    break
                await response.write(chunk)
                offset += len(chunk)
            await response.write_eof()
        except ConnectionResetError:
            logger.debug(f"[STREAM] Client closed the connection at byte {offset}.")
        return response


def _range_not_satisfiable(size: int) -> web.Response:
    return web.Response(status=416, headers={"Content-Range": f"bytes */{size}"})
