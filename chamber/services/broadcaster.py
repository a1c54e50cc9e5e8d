from __future__ import annotations

import asyncio
import itertools
import logging
from typing import AsyncIterator, Optional

from ..core.timeutil import now_utc
from ..domain.models import BroadcastMessage

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One observer's private, bounded outbound buffer."""

    def __init__(self, sub_id: int, buffer_size: int) -> None:
        self.id = sub_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, buffer_size))
        self._closed = False
        self.close_reason: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, message: BroadcastMessage) -> bool:
        """Queue without waiting. Returns False if the buffer is full or closed."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self, reason: str = "closed") -> None:
        if self._closed:
            return
        self._closed = True
        self.close_reason = reason
        # Release buffered messages now, then wake any reader
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[BroadcastMessage]:
        """Next message, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self) -> AsyncIterator[BroadcastMessage]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[BroadcastMessage]:
        while True:
            msg = await self.get()
            if msg is None:
                return
            yield msg


class Broadcaster:
    """Fans every published message out to all live subscriptions.

    ``publish`` never waits: a subscriber whose buffer is full is dropped
    instead of slowing the publisher down.
    """

    def __init__(self, buffer_size: int = 100, app_name: str = "Mushroom Chamber") -> None:
        self._buffer_size = buffer_size
        self._app_name = app_name
        self._subs: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._subs)

    def subscribe(self) -> Subscription:
        sub = Subscription(next(self._ids), self._buffer_size)
        sub.offer(
            BroadcastMessage(
                "connection",
                {"message": f"Connected to {self._app_name} WebSocket", "subscriber": sub.id},
                now_utc(),
            )
        )
        self._subs[sub.id] = sub
        logger.info("Subscriber %d connected (%d live)", sub.id, len(self._subs))
        return sub

    def unsubscribe(self, sub: Subscription, reason: str = "unsubscribed") -> None:
        sub.close(reason)
        if self._subs.pop(sub.id, None) is not None:
            logger.info("Subscriber %d removed: %s (%d live)", sub.id, reason, len(self._subs))

    def publish(self, message: BroadcastMessage) -> None:
        dropped: list[Subscription] = []
        for sub in list(self._subs.values()):
            try:
                if not sub.offer(message):
                    dropped.append(sub)
            except Exception:
                logger.exception("Subscriber %d failed to accept %s", sub.id, message.type)
                dropped.append(sub)

        for sub in dropped:
            if sub.closed:
                self.unsubscribe(sub, sub.close_reason or "closed")
            else:
                logger.warning(
                    "Subscriber %d too slow (%d pending), disconnecting", sub.id, sub.pending
                )
                self.unsubscribe(sub, "buffer overflow")

    def close_all(self) -> None:
        for sub in list(self._subs.values()):
            self.unsubscribe(sub, "server shutdown")
