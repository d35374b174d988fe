# src/tradearena/services/notifier.py

"""
Push notifications for matchmaking and rating events.

Delivery is fire-and-forget: a player who is not connected simply misses the
push and learns the outcome from the status endpoints instead.
"""

import asyncio
import logging
from typing import Awaitable, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Anything that can tell a user about matchmaking events."""

    async def on_match_found(self, user_id: str, payload: dict) -> None: ...

    async def on_rating_change(self, user_id: str, payload: dict) -> None: ...


async def notify_quietly(notification: Awaitable[None], event: str, user_id: str) -> None:
    """Await a notifier call, logging instead of raising if delivery fails."""
    try:
        await notification
    except Exception as e:
        logger.warning(
            "Failed to deliver %s notification to user %s: %s",
            event,
            user_id,
            e,
            extra={"event": event, "user_id": user_id},
        )


class ConnectionManager:
    """Tracks WebSocket connections per user and pushes JSON events to them."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
        logger.info("WebSocket connected", extra={"user_id": user_id})

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    del self._connections[user_id]
        logger.info("WebSocket disconnected", extra={"user_id": user_id})

    def connection_count(self, user_id: str) -> int:
        return len(self._connections.get(user_id, ()))

    async def send(self, user_id: str, message: dict) -> bool:
        """Send to every connection of a user. True if at least one got it."""
        async with self._lock:
            sockets = set(self._connections.get(user_id, ()))

        delivered = False
        for websocket in sockets:
            try:
                await websocket.send_json(message)
                delivered = True
            except Exception as e:
                logger.warning(
                    "Dropping broken WebSocket for user %s: %s", user_id, e
                )
                await self.disconnect(user_id, websocket)
        return delivered

    async def on_match_found(self, user_id: str, payload: dict) -> None:
        await self.send(user_id, {"type": "match_found", **payload})

    async def on_rating_change(self, user_id: str, payload: dict) -> None:
        await self.send(user_id, {"type": "rating_change", **payload})


# Global connection manager shared by the API and the matchmaker
connection_manager = ConnectionManager()


def get_notifier() -> Notifier:
    """FastAPI dependency returning the process-wide notifier."""
    return connection_manager
