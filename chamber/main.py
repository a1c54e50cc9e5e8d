from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.log import configure_logging
from .core.timeutil import now_utc

from .api.routes import router as api_router
from .api.ws import ws_router
import chamber.api.routes as routes_module
import chamber.api.ws as ws_module

from .devices.simulator import SimulatedChamberSensor
from .domain.errors import (
    ChamberError,
    ConcurrencyConflict,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .domain.event_store import EventStore
from .domain.state_resolver import StateResolver
from .services.broadcaster import Broadcaster
from .services.ingestion import IngestionService
from .services.queries import QueryService
from .services.retention import RetentionService
from .services.sampler import SimulationService
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# --- Built in lifespan ---
store: EventStore | None = None
broadcaster: Broadcaster | None = None
ingestion: IngestionService | None = None
queries: QueryService | None = None
sim_sensor: SimulatedChamberSensor | None = None
simulation: SimulationService | None = None
retention: RetentionService | None = None


def get_broadcaster() -> Broadcaster:
    assert broadcaster is not None
    return broadcaster


def get_ingestion() -> IngestionService:
    assert ingestion is not None
    return ingestion


def get_queries() -> QueryService:
    assert queries is not None
    return queries


def get_sim_sensor() -> SimulatedChamberSensor:
    if sim_sensor is None:
        raise NotFoundError("Sim sensor not available (sensor_mode is not 'sim').")
    return sim_sensor


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (sensor_mode=%s db=%s)", settings.app_name, settings.sensor_mode, settings.sqlite_path)

    global store, broadcaster, ingestion, queries, sim_sensor, simulation, retention

    repo = SQLiteRepository(settings.sqlite_path)
    await repo.init()

    broadcaster = Broadcaster(buffer_size=settings.subscriber_buffer_size, app_name=settings.app_name)
    store = EventStore(repo, broadcaster)
    resolver = StateResolver(store, lock_timeout_s=settings.device_lock_timeout_seconds)
    ingestion = IngestionService(store, resolver)
    queries = QueryService(store, resolver)

    retention = RetentionService(store, settings.retention_days, settings.retention_interval_seconds)
    await retention.start()

    if settings.sensor_mode.lower() == "sim":
        sim_sensor = SimulatedChamberSensor(sensor_id=settings.default_device_id)
        simulation = SimulationService(sim_sensor, ingestion, settings.sample_seconds)
        await simulation.start()

    try:
        yield
    finally:
        if simulation:
            await simulation.stop()
            simulation = None
        sim_sensor = None

        await retention.stop()
        broadcaster.close_all()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, version=APP_VERSION, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_ingestion] = get_ingestion
app.dependency_overrides[routes_module.get_queries] = get_queries
app.dependency_overrides[routes_module.get_sim_sensor] = get_sim_sensor
app.dependency_overrides[ws_module.get_broadcaster] = get_broadcaster

app.include_router(api_router, prefix="/api")
app.include_router(ws_router)


_STATUS_BY_ERROR = {
    ValidationError: 400,
    NotFoundError: 404,
    ConcurrencyConflict: 409,
    StorageError: 503,
}


@app.exception_handler(ChamberError)
async def chamber_error_handler(request: Request, exc: ChamberError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"ok": False, "error": str(exc)})


@app.get("/")
async def root():
    return {
        "message": settings.app_name,
        "version": APP_VERSION,
        "endpoints": {
            "sensors": "/api/sensors",
            "actuators": "/api/actuators",
            "system": "/api/system",
            "websocket": "/ws",
            "health": "/health",
        },
    }


@app.get("/health")
async def health():
    storage = "connected"
    try:
        await store.ping()
    except StorageError as e:
        logger.warning("Health check: %s", e)
        storage = "unavailable"
    return {
        "status": "ok" if storage == "connected" else "degraded",
        "app": settings.app_name,
        "storage": storage,
        "timestamp": now_utc().isoformat(),
    }
