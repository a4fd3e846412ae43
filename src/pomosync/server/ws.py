"""WebSocket hub relaying timer events between a user's devices.

This module provides:
- TimerHub: per-user rooms of WebSocket connections
- router: the ``/ws/timer/{token}`` endpoint

Architecture:
    device A ──ws──► TimerHub ──ws──► device B, device C (same user)
                        │
                  (no timer state on the server)

The hub is a dumb relay: it checks that a frame is a JSON object with a
``type`` and forwards the original text to every other socket of the
sender's user. The sender never gets its own frame back.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

if TYPE_CHECKING:
    from pomosync.server.database import Database

logger = logging.getLogger(__name__)

# Close code for an invalid or revoked token
CLOSE_INVALID_TOKEN = 4001


class TimerHub:
    """Central hub for timer WebSocket connections.

    Thread-safe for use with asyncio.
    """

    def __init__(self) -> None:
        self._rooms: dict[int, set[WebSocket]] = {}  # user_id -> sockets
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: int) -> None:
        """Accept a connection and add it to the user's room.

        Args:
            websocket: The WebSocket connection.
            user_id: Authenticated user.
        """
        # Registered before accept; relay skips sockets not yet connected
        async with self._lock:
            self._rooms.setdefault(user_id, set()).add(websocket)
            count = len(self._rooms[user_id])
        try:
            await websocket.accept()
        except Exception:
            await self.disconnect(websocket, user_id)
            raise
        logger.info("Timer socket connected: user_id=%d (%d open)", user_id, count)

    async def disconnect(self, websocket: WebSocket, user_id: int) -> None:
        """Remove a connection from the user's room."""
        async with self._lock:
            room = self._rooms.get(user_id)
            if room is not None:
                room.discard(websocket)
                if not room:
                    del self._rooms[user_id]
        logger.info("Timer socket disconnected: user_id=%d", user_id)

    async def connection_count(self, user_id: int) -> int:
        """Number of open sockets of a user."""
        async with self._lock:
            return len(self._rooms.get(user_id, ()))

    async def relay(self, sender: WebSocket, user_id: int, message: str) -> int:
        """Forward a frame to the other sockets of the same user.

        Args:
            sender: Socket the frame came from (excluded).
            user_id: Owner of the room.
            message: Raw text frame.

        Returns:
            Number of sockets the frame was delivered to.
        """
        async with self._lock:
            peers = [ws for ws in self._rooms.get(user_id, ()) if ws is not sender]

        delivered = 0
        disconnected = []
        for ws in peers:
            try:
                if ws.client_state == WebSocketState.CONNECTED:
                    await ws.send_text(message)
                    delivered += 1
            except Exception:
                disconnected.append(ws)

        if disconnected:
            async with self._lock:
                room = self._rooms.get(user_id)
                if room is not None:
                    room.difference_update(disconnected)
        return delivered

    async def close_all(self) -> None:
        """Close every connection (server shutdown)."""
        async with self._lock:
            sockets = [ws for room in self._rooms.values() for ws in room]
            self._rooms.clear()
        for ws in sockets:
            with contextlib.suppress(Exception):
                await ws.close()


def is_timer_event(message: str) -> bool:
    """Check that a frame looks like a timer event."""
    try:
        data = json.loads(message)
    except json.JSONDecodeError:
        return False
    return isinstance(data, dict) and isinstance(data.get("type"), str)


# WebSocket router
router = APIRouter(tags=["websocket"])


@router.websocket("/ws/timer/{token}")
async def websocket_timer(websocket: WebSocket, token: str) -> None:
    """WebSocket endpoint for timer sessions.

    Every text frame is relayed to the user's other sessions:
        {"type": "start", "payload": {...}, "timestamp": "...", "origin": "...", "eventId": "..."}

    Args:
        websocket: The WebSocket connection.
        token: Authentication token.
    """
    db: Database = websocket.app.state.db
    hub: TimerHub = websocket.app.state.hub

    auth_token = db.validate_token(token)
    if not auth_token:
        await websocket.close(code=CLOSE_INVALID_TOKEN, reason="Invalid token")
        return

    user_id = auth_token.user_id
    await hub.connect(websocket, user_id)

    try:
        while True:
            message = await websocket.receive_text()
            if not is_timer_event(message):
                logger.warning("Dropping invalid frame from user %d: %s", user_id, message[:100])
                continue
            delivered = await hub.relay(websocket, user_id, message)
            logger.debug("Relayed frame to %d sockets of user %d", delivered, user_id)
    except WebSocketDisconnect:
        await hub.disconnect(websocket, user_id)
    except Exception as e:
        logger.exception("Error in timer WebSocket: %s", e)
        await hub.disconnect(websocket, user_id)
