"""WebSocket channel for live job progress.

Client messages:
    {"type": "subscribe", "jobId": 1}
    {"type": "unsubscribe", "jobId": 1}
    {"type": "getProgress", "jobId": 1}

Server messages: connected, subscribed, unsubscribed, progress events
(stage/progress/section/complete/error) and {"type": "error", "message"}
for malformed input.

All outgoing messages pass through the subscriber's bounded queue, so a
single task writes to the socket and ordering is preserved.
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from insight_atlas.api.dependencies import AppServices, services_for
from insight_atlas.models import ProgressSnapshot, SubscriptionMessage
from insight_atlas.services import JobNotFoundError, Subscriber

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Progress"])


def snapshot_message(job_id: int, snapshot: ProgressSnapshot) -> dict[str, Any]:
    """Catch-up message built from a progress snapshot."""
    return {
        "type": "progress",
        "jobId": job_id,
        "message": snapshot.currentStep,
        "snapshot": True,
        **snapshot.model_dump(exclude_none=True),
    }


def _error(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


async def _read_snapshot(services: AppServices, job_id: int) -> dict[str, Any]:
    try:
        snapshot = await services.insights.get_status(job_id)
    except JobNotFoundError as e:
        return _error(str(e))
    return snapshot_message(job_id, snapshot)


async def handle_message(raw: str, subscriber: Subscriber, services: AppServices) -> None:
    """Apply one client control message."""
    try:
        message = SubscriptionMessage.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        subscriber.offer(_error("Invalid message format"))
        return

    if message.type not in ("subscribe", "unsubscribe", "getProgress"):
        subscriber.offer(_error(f"Unknown message type: {message.type}"))
        return
    if message.jobId is None:
        subscriber.offer(_error("jobId is required"))
        return

    job_id = message.jobId
    if message.type == "subscribe":
        # Register before reading the snapshot so no event falls in between;
        # live events stay held until the snapshot is queued ahead of them
        services.hub.subscribe(subscriber, job_id, hold=True)
        subscriber.offer({"type": "subscribed", "jobId": job_id})
        snapshot = None
        try:
            snapshot = await _read_snapshot(services, job_id)
        finally:
            subscriber.release(job_id, head=snapshot)
        logger.debug(f"Subscriber {subscriber.id} subscribed to job {job_id}")
    elif message.type == "unsubscribe":
        services.hub.unsubscribe(subscriber, job_id)
        subscriber.offer({"type": "unsubscribed", "jobId": job_id})
    else:
        subscriber.offer(await _read_snapshot(services, job_id))


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    """Forward queued messages to the socket until the subscriber closes."""
    while True:
        message = await subscriber.receive()
        if message is None:
            break
        await websocket.send_json(message)


@router.websocket("/ws")
async def progress_socket(websocket: WebSocket) -> None:
    services = services_for(websocket)
    await websocket.accept()

    subscriber = services.hub.connect()
    subscriber.offer({"type": "connected", "message": "Connected to progress updates"})
    sender = asyncio.create_task(_pump(websocket, subscriber), name=f"ws_sender_{subscriber.id}")

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_message(raw, subscriber, services)
    except WebSocketDisconnect:
        logger.debug(f"Subscriber {subscriber.id} disconnected")
    finally:
        # Disconnect never cancels the jobs being watched
        services.hub.disconnect(subscriber)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"WebSocket sender for subscriber {subscriber.id} ended with error: {e}")
