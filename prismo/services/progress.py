# prismo/services/progress.py

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from ..config import PROGRESS_INTERVAL, logger
from ..models import ProgressEvent
from ..utils import safe_int


class ProgressSubscription:
    """An async iterator over the progress events a subscriber asked for.

    Slow consumers lose the oldest events rather than blocking publishers.
    """

    def __init__(
        self, channel: ProgressChannel, identifier: str | None, maxsize: int
    ) -> None:
        self._channel = channel
        self.identifier = identifier
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue(maxsize)
        self.closed = False

    def matches(self, event: ProgressEvent) -> bool:
        return self.identifier is None or self.identifier == event.identifier

    def put(self, event: ProgressEvent | None) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(event)

    async def get(self) -> ProgressEvent | None:
        """Next event, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._channel.unsubscribe(self)
        self.put(None)

    def __aiter__(self) -> ProgressSubscription:
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ProgressChannel:
    """Fan-out of per-job progress events to any number of subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subscribers: list[ProgressSubscription] = []

    def subscribe(self, identifier: str | None = None) -> ProgressSubscription:
        """Subscribes to one stream's events, or to all of them when no id is given."""
        subscription = ProgressSubscription(self, identifier, self._maxsize)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: ProgressSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, event: ProgressEvent) -> None:
        for subscription in list(self._subscribers):
            if subscription.matches(event):
                subscription.put(event)

    def close(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()


class ProgressReporter:
    """Turns engine status snapshots of one job into rate-limited events."""

    def __init__(
        self,
        identifier: str,
        channel: ProgressChannel,
        interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.identifier = identifier
        self.channel = channel
        self.interval = interval
        self._clock = clock
        self.last_update_time: float | None = None

    def report(self, status: Any) -> ProgressEvent | None:
        """Publishes an event unless the previous one is younger than the interval."""
        current_time = self._clock()
        if (
            self.last_update_time is not None
            and current_time - self.last_update_time < self.interval
        ):
            return None
        self.last_update_time = current_time

        progress = getattr(status, "progress", 0.0) or 0.0
        event = ProgressEvent(
            identifier=self.identifier,
            download_speed=safe_int(getattr(status, "download_rate", 0)),
            progress=min(max(float(progress), 0.0), 1.0),
            num_peers=safe_int(getattr(status, "num_peers", 0)),
            downloaded=safe_int(getattr(status, "total_done", 0)),
            length=safe_int(getattr(status, "total_wanted", 0)),
        )
        logger.debug(
            f"[STREAM] Progress {event.progress:.2%} at {event.download_speed} B/s, "
            f"{event.num_peers} peers."
        )
        self.channel.publish(event)
        return event
