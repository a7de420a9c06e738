"""
Room-based WebSocket registry for real-time fan-out.

Every connection joins its private ``user_{id}`` room and its
organization's ``org_{id}`` room; chat windows additionally join their
session room. Delivery is at-most-once per connected socket: nothing is
buffered for clients that are offline at emit time.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import WebSocket


def user_channel(user_id: str) -> str:
    return f"user_{user_id}"


def org_channel(organization_id: str) -> str:
    return f"org_{organization_id}"


def is_reserved_room(room: str) -> bool:
    return room.startswith("user_") or room.startswith("org_")


class ConnectionManager:
    """Tracks which sockets are in which rooms."""

    def __init__(self):
        self._rooms: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, rooms: list[str]):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            for room in rooms:
                self._rooms.setdefault(room, set()).add(websocket)

    async def join(self, websocket: WebSocket, room: str):
        async with self._lock:
            self._rooms.setdefault(room, set()).add(websocket)

    async def leave(self, websocket: WebSocket, room: str):
        async with self._lock:
            self._discard(websocket, room)

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket from every room it joined."""
        async with self._lock:
            for room in list(self._rooms):
                self._discard(websocket, room)

    def _discard(self, websocket: WebSocket, room: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[room]

    async def emit(self, room: str, event: str, data: Any) -> int:
        """Send ``event`` to every socket in ``room``; returns how many received it."""
        async with self._lock:
            connections = self._rooms.get(room, set()).copy()

        if not connections:
            return 0

        message = json.dumps({"event": event, "data": data}, default=str)
        delivered = 0
        closed = []

        for ws in connections:
            try:
                await ws.send_text(message)
                delivered += 1
            except Exception:
                # Connection closed or errored
                closed.append(ws)

        if closed:
            async with self._lock:
                for ws in closed:
                    self._discard(ws, room)

        return delivered

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, set()))

    def get_total_connections(self) -> int:
        """Number of distinct sockets currently registered."""
        sockets: set[int] = set()
        for members in self._rooms.values():
            sockets.update(id(ws) for ws in members)
        return len(sockets)


# Singleton instance
manager = ConnectionManager()


def get_realtime() -> ConnectionManager:
    return manager
