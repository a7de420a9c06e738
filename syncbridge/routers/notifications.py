from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from syncbridge.auth import AuthContext, require_permission
from syncbridge.auth.permissions import NOTIFICATIONS_READ
from syncbridge.models.notifications import NotificationReadAllResponse, NotificationResponse
from syncbridge.store import SyncStore, get_store


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(require_permission(NOTIFICATIONS_READ)),
    store: SyncStore = Depends(get_store),
):
    """Notifications for the signed-in user, newest first.

    Clients call this after reconnecting: real-time emits are not replayed.
    """
    return store.list_notifications(auth.user_id, auth.org_id, limit=limit)


@router.post("/read-all", response_model=NotificationReadAllResponse)
async def mark_all_read(
    auth: AuthContext = Depends(require_permission(NOTIFICATIONS_READ)),
    store: SyncStore = Depends(get_store),
):
    updated = store.mark_all_notifications_read(auth.user_id, auth.org_id)
    return NotificationReadAllResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    auth: AuthContext = Depends(require_permission(NOTIFICATIONS_READ)),
    store: SyncStore = Depends(get_store),
):
    notification = store.mark_notification_read(notification_id, auth.user_id)
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification
