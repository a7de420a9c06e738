from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from syncbridge.observability import incr_metric, log_event
from syncbridge.realtime import ConnectionManager, org_channel, user_channel
from syncbridge.store import Row, SyncStore


@dataclass(frozen=True)
class Broadcast:
    """Organization-wide event emitted alongside a user notification."""
    event: str
    payload: dict[str, Any]


class NotificationService:
    """Persists notifications and fans them out to connected clients.

    The database row is written first; it is what a client that was offline
    at emit time fetches later. Real-time emits are best-effort.
    """

    def __init__(self, store: SyncStore, realtime: ConnectionManager) -> None:
        self.store = store
        self.realtime = realtime

    async def notify(
        self,
        *,
        user_id: str,
        organization_id: str,
        type: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        broadcast: Broadcast | None | Literal["default"] = "default",
    ) -> Row:
        notification = self.store.insert_notification(
            {
                "user_id": user_id,
                "organization_id": organization_id,
                "type": type,
                "title": title,
                "body": body,
                "data": data or {},
                "read": False,
            }
        )
        incr_metric("notifications.created", type=type)
        await self._emit(user_channel(user_id), "notification", notification)

        if broadcast == "default":
            broadcast = Broadcast(
                "notification",
                {"notificationId": notification.get("id"), "userId": user_id, "type": type},
            )
        if isinstance(broadcast, Broadcast):
            await self.publish(organization_id, broadcast.event, broadcast.payload)
        return notification

    async def publish(self, organization_id: str, event: str, payload: dict[str, Any]) -> int:
        return await self._emit(org_channel(organization_id), event, payload)

    async def emit_to_room(self, room: str, event: str, payload: dict[str, Any]) -> int:
        return await self._emit(room, event, payload)

    async def _emit(self, room: str, event: str, payload: Any) -> int:
        try:
            delivered = await self.realtime.emit(room, event, payload)
        except Exception as exc:
            incr_metric("realtime.emit.failed", realtime_event=event)
            log_event("realtime_emit_failed", level=logging.WARNING, room=room, realtime_event=event, error=str(exc))
            return 0
        incr_metric("realtime.emitted", realtime_event=event)
        return delivered
