from __future__ import annotations
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from ..core.timeutil import now_utc
from ..domain.event_store import EventStore

logger = logging.getLogger(__name__)


class RetentionService:
    """Periodic trigger for ``EventStore.purge_older_than``."""

    def __init__(self, store: EventStore, retention_days: int, interval_seconds: float) -> None:
        self._store = store
        self._retention_days = retention_days
        self._interval_seconds = interval_seconds

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    async def start(self) -> None:
        if self._retention_days <= 0:
            logger.info("Retention disabled")
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="retention_loop")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def purge_once(self) -> int:
        cutoff = now_utc() - timedelta(days=self._retention_days)
        return await self._store.purge_older_than(cutoff)

    async def _run(self) -> None:
        logger.info(
            "Retention loop started (retention_days=%s interval=%ss)",
            self._retention_days,
            self._interval_seconds,
        )
        while not self._stop.is_set():
            try:
                await self.purge_once()
            except Exception as e:
                logger.exception("Retention purge failed: %s", e)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Retention loop stopped")
