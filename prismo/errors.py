# prismo/errors.py


class PrismoError(Exception):
    """Base class for errors raised by the streaming core."""


class TorrentEngineError(PrismoError):
    """The torrent engine rejected or failed a job."""


class DuplicateTorrentError(TorrentEngineError):
    """The engine already holds a job for the torrent being added."""

    def __init__(self, info_hash: str):
        super().__init__(f"Cannot add duplicate torrent {info_hash}")
        self.info_hash = info_hash


class StreamBindError(PrismoError):
    """The local HTTP endpoint for a stream could not be bound."""


class StreamStoppedError(PrismoError):
    """A stream was stopped or replaced before its endpoint was ready."""


class InvalidFileIndexError(PrismoError):
    """A file index hint does not address a file of the torrent."""
