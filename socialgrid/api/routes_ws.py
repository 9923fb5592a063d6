"""
Realtime WebSocket route.

Clients send JSON frames:
    {"command": "SUBSCRIBE", "destination": "/topic/region-status-update"}
    {"command": "UNSUBSCRIBE", "destination": "/topic/region-status-update"}

and receive {"destination", "payload", "sentAt"} frames for every message
published to a subscribed destination. Per-user queues are addressed as
/user/{userId}/queue/... .
"""

import asyncio
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..logging import get_logger
from ..realtime.notifier import BROKER_PREFIXES, SESSION_QUEUE_SIZE, Message, QueueSubscriber

router = APIRouter(tags=["realtime"])

logger = get_logger(__name__)


def _valid_destination(destination) -> bool:
    return isinstance(destination, str) and destination.startswith(BROKER_PREFIXES)


async def _receive_commands(websocket: WebSocket, subscriber: QueueSubscriber, notifier):
    while True:
        raw = await websocket.receive_text()
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"error": "frame is not valid JSON"})
            continue
        if not isinstance(frame, dict):
            await websocket.send_json({"error": "frame must be a JSON object"})
            continue

        command = str(frame.get("command", "")).upper()
        destination = frame.get("destination")
        if not _valid_destination(destination):
            await websocket.send_json({"error": f"invalid destination: {destination}"})
            continue

        if command == "SUBSCRIBE":
            notifier.subscribe(destination, subscriber)
            await websocket.send_json({"subscribed": destination})
        elif command == "UNSUBSCRIBE":
            notifier.unsubscribe(destination, subscriber)
            await websocket.send_json({"unsubscribed": destination})
        else:
            await websocket.send_json({"error": f"unknown command: {command}"})


async def _forward_messages(websocket: WebSocket, queue: "asyncio.Queue[Message]"):
    while True:
        message = await queue.get()
        await websocket.send_text(message.to_json())


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket):
    """Push channel for topic and per-user queue messages."""
    await websocket.accept()
    notifier = websocket.app.state.services.notifier

    queue: "asyncio.Queue[Message]" = asyncio.Queue(maxsize=SESSION_QUEUE_SIZE)
    subscriber = QueueSubscriber(asyncio.get_running_loop(), queue)
    logger.info("ws_connected", client=str(websocket.client))

    tasks = [
        asyncio.create_task(_receive_commands(websocket, subscriber, notifier)),
        asyncio.create_task(_forward_messages(websocket, queue)),
    ]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning("ws_session_error", error=str(error))
    finally:
        for task in tasks:
            task.cancel()
        notifier.unsubscribe_all(subscriber)
        logger.info("ws_disconnected", client=str(websocket.client))
