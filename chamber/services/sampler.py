from __future__ import annotations
import asyncio
import logging
from typing import Optional

from ..domain.interfaces import ChamberSensor
from .ingestion import IngestionService

logger = logging.getLogger(__name__)


class SimulationService:
    """Feeds simulated readings into ingestion when no real device is attached."""

    def __init__(self, sensor: ChamberSensor, ingestion: IngestionService, sample_seconds: float) -> None:
        self._sensor = sensor
        self._ingestion = ingestion
        self._sample_seconds = sample_seconds

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.samples = 0

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="simulation_loop")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def sample_once(self) -> None:
        loop = asyncio.get_running_loop()
        values = await loop.run_in_executor(None, self._sensor.read)
        await self._ingestion.submit_sensor_reading(self._sensor.sensor_id, values)
        self.samples += 1

    async def _run(self) -> None:
        logger.info("Simulation loop started (sample_seconds=%s)", self._sample_seconds)

        while not self._stop.is_set():
            try:
                await self.sample_once()
            except RuntimeError as e:
                # disabled via the sim endpoints
                logger.debug("Simulated read skipped: %s", e)
            except Exception as e:
                logger.exception("Simulation loop error: %s", e)

            # sleep with cancellation awareness
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._sample_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Simulation loop stopped")
