from __future__ import annotations

import asyncio
import json
import logging

import pydantic
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from ..core.config import settings
from ..core.timeutil import now_utc
from ..domain.errors import ChamberError, DeliveryFailure
from ..domain.models import BroadcastMessage
from ..services.broadcaster import Broadcaster, Subscription
from ..services.ingestion import IngestionService
from .routes import get_ingestion
from .schemas import SensorReadingIn

logger = logging.getLogger(__name__)

ws_router = APIRouter()

# Keys that mark an inbound message as a reading pushed by the ESP32
_READING_KEYS = frozenset({"temperature", "humidity", "soilMoisture", "co2", "co2Level", "light", "lightIntensity"})


def get_broadcaster() -> Broadcaster:  # overridden in main
    raise RuntimeError("Broadcaster dependency not configured")


def _reply(sub: Subscription, kind: str, data: dict) -> None:
    if not sub.offer(BroadcastMessage(kind, data, now_utc())):
        logger.warning("Subscriber %d: dropped %s reply, buffer full", sub.id, kind)


async def _handle_inbound(text: str, sub: Subscription, ingestion: IngestionService) -> None:
    try:
        payload = json.loads(text)
    except ValueError:
        _reply(sub, "error", {"message": "Invalid JSON"})
        return
    if not isinstance(payload, dict):
        _reply(sub, "error", {"message": "Expected a JSON object"})
        return

    if payload.get("type") == "ping":
        _reply(sub, "pong", {})
        return

    if _READING_KEYS & payload.keys():
        try:
            req = SensorReadingIn.model_validate(payload)
        except pydantic.ValidationError as e:
            details = [f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()]
            _reply(sub, "error", {"message": "Invalid sensor reading", "details": details})
            return
        try:
            await ingestion.submit_sensor_reading(req.deviceId, req.channels(), req.timestamp)
        except ChamberError as e:
            _reply(sub, "error", {"message": str(e)})
        return

    logger.debug("Subscriber %d: ignoring message %s", sub.id, text[:200])


async def _receive(ws: WebSocket, sub: Subscription, ingestion: IngestionService) -> None:
    try:
        while True:
            text = await ws.receive_text()
            await _handle_inbound(text, sub, ingestion)
    except WebSocketDisconnect:
        return


async def _deliver(ws: WebSocket, sub: Subscription, broadcaster: Broadcaster) -> None:
    timeout = settings.subscriber_send_timeout_seconds
    try:
        async for msg in sub:
            try:
                await asyncio.wait_for(ws.send_text(json.dumps(msg.to_dict(), ensure_ascii=False)), timeout)
            except asyncio.TimeoutError:
                raise DeliveryFailure(f"send of {msg.type} timed out after {timeout}s") from None
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                raise DeliveryFailure(f"send of {msg.type} failed: {e}") from e
    except DeliveryFailure as e:
        logger.warning("Subscriber %d: %s", sub.id, e)
        broadcaster.unsubscribe(sub, "delivery failure")


@ws_router.websocket("/ws")
async def websocket_endpoint(
    ws: WebSocket,
    broadcaster: Broadcaster = Depends(get_broadcaster),
    ingestion: IngestionService = Depends(get_ingestion),
):
    await ws.accept()
    sub = broadcaster.subscribe()

    receiver = asyncio.create_task(_receive(ws, sub, ingestion), name=f"ws_recv_{sub.id}")
    sender = asyncio.create_task(_deliver(ws, sub, broadcaster), name=f"ws_send_{sub.id}")
    try:
        done, _ = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        broadcaster.unsubscribe(sub, "client disconnected")
        for task in (receiver, sender):
            task.cancel()
        results = await asyncio.gather(receiver, sender, return_exceptions=True)
        for res in results:
            if isinstance(res, Exception):
                logger.error("Subscriber %d: connection task failed: %r", sub.id, res)

    # Server side ended it (slow client, shutdown, failed send)
    if sender in done and ws.client_state == WebSocketState.CONNECTED:
        try:
            await ws.close(code=1013, reason=sub.close_reason or "")
        except (RuntimeError, OSError) as e:
            logger.debug("Subscriber %d: close after disconnect: %s", sub.id, e)
