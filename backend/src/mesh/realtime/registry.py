"""Process-local registry of live websocket channels per user."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, Set

from fastapi.websockets import WebSocket

from app.monitoring.metrics import realtime_connections


class ConnectionRegistry:
    """Maps user ids to the set of channels currently open for them.

    A user with at least one channel is online for fan-out purposes. Every
    open channel of a user receives every event addressed to that user.
    """

    def __init__(self, *, scope: str = "direct") -> None:
        self._connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._scope = scope

    async def register(self, user_id: int, websocket: WebSocket) -> bool:
        """Add a channel; returns True when the user just came online."""

        async with self._lock:
            sockets = self._connections[user_id]
            if websocket in sockets:
                return False
            came_online = not sockets
            sockets.add(websocket)
        realtime_connections.labels(self._scope).inc()
        return came_online

    async def unregister(self, user_id: int, websocket: WebSocket) -> bool:
        """Drop a channel; returns True when it was the user's last one."""

        async with self._lock:
            sockets = self._connections.get(user_id)
            if not sockets or websocket not in sockets:
                return False
            sockets.discard(websocket)
            went_offline = not sockets
            if went_offline:
                self._connections.pop(user_id, None)
        realtime_connections.labels(self._scope).dec()
        return went_offline

    async def channels_for(self, user_id: int) -> list[WebSocket]:
        async with self._lock:
            return list(self._connections.get(user_id, ()))

    async def is_online(self, user_id: int) -> bool:
        async with self._lock:
            return bool(self._connections.get(user_id))

    def online_user_ids(self) -> set[int]:
        return {user_id for user_id, sockets in self._connections.items() if sockets}
