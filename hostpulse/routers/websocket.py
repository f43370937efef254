# hostpulse/routers/websocket.py

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _receive_until_disconnect(websocket: WebSocket):
    # Keep the connection alive; incoming messages are ignored
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")


@router.websocket("/ws/events")
async def events_endpoint(websocket: WebSocket):
    """
    Streams live events to a dashboard: every fired alert
    ("alert-triggered") and every collected sample ("system-metrics").
    """
    service = getattr(websocket.app.state, "service", None)
    await websocket.accept()
    if service is None:
        await websocket.close(code=1013, reason="Monitoring service not ready")
        return

    queue = service.notifier.subscribe()
    tasks: list[asyncio.Task] = []
    try:
        await websocket.send_json({"message": "WebSocket connection successful."})
        tasks = [
            asyncio.create_task(_forward_events(websocket, queue)),
            asyncio.create_task(_receive_until_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(f"WebSocket event stream stopped: {task.exception()!r}")

    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        service.notifier.unsubscribe(queue)
