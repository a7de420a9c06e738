from __future__ import annotations

from dataclasses import dataclass

from fastapi import BackgroundTasks, Depends, Request

from syncbridge.realtime import ConnectionManager, get_realtime
from syncbridge.services.dispatcher import PeerDispatcher
from syncbridge.services.notifications import NotificationService
from syncbridge.store import SyncStore, get_store


@dataclass
class SyncContext:
    """Collaborators one inbound event or local hook works with."""
    store: SyncStore
    notifications: NotificationService
    dispatcher: PeerDispatcher
    background_tasks: BackgroundTasks | None = None
    request_id: str | None = None

    def fire(self, kind: str, payload: dict, *, origin: str) -> bool:
        return self.dispatcher.fire(
            kind,
            payload,
            origin=origin,
            background_tasks=self.background_tasks,
            request_id=self.request_id,
        )


def get_dispatcher(request: Request) -> PeerDispatcher:
    return request.app.state.dispatcher


def get_sync_context(
    request: Request,
    background_tasks: BackgroundTasks,
    store: SyncStore = Depends(get_store),
    realtime: ConnectionManager = Depends(get_realtime),
    dispatcher: PeerDispatcher = Depends(get_dispatcher),
) -> SyncContext:
    return SyncContext(
        store=store,
        notifications=NotificationService(store, realtime),
        dispatcher=dispatcher,
        background_tasks=background_tasks,
        request_id=getattr(request.state, "request_id", None),
    )
