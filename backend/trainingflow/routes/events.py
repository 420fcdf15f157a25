"""
Event stream route - one WebSocket per open dashboard.

The subscription is registered before the handshake completes and the
client gets a `connected` greeting, so anything committed after the client
has read the greeting is guaranteed to be forwarded. Client messages are
read and ignored; they only serve to notice a disconnect.
"""

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from trainingflow.services.broadcaster import broadcaster
from trainingflow.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("events")


async def _forward(websocket: WebSocket, subscription):
    while True:
        event = await subscription.next_event()
        await websocket.send_json(event.to_message())


async def _drain(websocket: WebSocket):
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/events")
async def event_stream(websocket: WebSocket):
    subscription = broadcaster.subscribe()
    try:
        await websocket.accept()
        await websocket.send_json({"event": "connected", "data": {}})

        tasks = [asyncio.ensure_future(_forward(websocket, subscription)),
                 asyncio.ensure_future(_drain(websocket))]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                log_with_context(logger, "WARNING", "Event stream closed: {}".format(error))
    except WebSocketDisconnect:
        log_with_context(logger, "INFO", "Dashboard disconnected before streaming started")
    finally:
        broadcaster.unsubscribe(subscription)
