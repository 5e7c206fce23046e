"""WebSocket endpoint streaming session changes and notifications."""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from app.chat.registry import SessionHandle
from app.chat.websocket import connection_manager
from app.core.exceptions import AuthError


logger = logging.getLogger("app.api.chat_websocket")

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _next_update(handle: SessionHandle) -> dict:
    """Wait for the next state change or notification and build its payload."""
    change = asyncio.create_task(handle.changes.get())
    notification = asyncio.create_task(handle.notifier.queue.get())
    try:
        done, _ = await asyncio.wait({change, notification}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (change, notification):
            if not task.done():
                task.cancel()

    payload: dict = {"timestamp": _timestamp()}
    if notification in done:
        payload["notification"] = notification.result().to_dict()
    if change in done:
        containers = {change.result()}
        while not handle.changes.empty():
            containers.add(handle.changes.get_nowait())
        payload["changed"] = sorted(containers)
        payload["state"] = handle.synchronizer.snapshot()
    payload["type"] = "change" if "state" in payload else "notification"
    return payload


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Client frames carry no commands; only the disconnect matters
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/chat")
async def chat_websocket(
    websocket: WebSocket,
    token: str = Query(...),
):
    """
    WebSocket endpoint for live session updates.

    Connection URL: ws://localhost:8000/api/v1/ws/chat?token={access_token}

    Message Format (Server → Client):
    {
        "type": "snapshot" | "change" | "notification",
        "state": {...session snapshot...},
        "changed": ["chats", "messages", ...],
        "notification": {"title", "description", "variant", "created_at"},
        "timestamp": "..."
    }
    """
    registry = websocket.app.state.registry
    try:
        handle = await registry.open(token)
    except AuthError as e:
        logger.info("WebSocket authentication failed: %s", e)
        await websocket.close(code=1008, reason="Invalid token")
        return

    user_id = handle.synchronizer.current_user.id
    await connection_manager.connect(websocket, handle.session_id, user_id)
    receiver = asyncio.create_task(_wait_for_disconnect(websocket))

    try:
        await websocket.send_json({
            "type": "snapshot",
            "state": handle.synchronizer.snapshot(),
            "timestamp": _timestamp(),
        })
        while True:
            update = asyncio.create_task(_next_update(handle))
            done, _ = await asyncio.wait({update, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                update.cancel()
                logger.info("WebSocket disconnected: user_id=%s", user_id)
                break

            payload = update.result()
            await connection_manager.broadcast_to_session(handle.session_id, payload)
            if payload.get("state", {}).get("state") == "unauthenticated":
                await websocket.close(code=1000, reason="Signed out")
                break
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: user_id=%s", user_id)
    finally:
        receiver.cancel()
        await connection_manager.disconnect(websocket)
