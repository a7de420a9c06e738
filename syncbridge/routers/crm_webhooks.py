from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from syncbridge.auth import require_sync_key
from syncbridge.models.events import CRM_INBOUND_EVENTS
from syncbridge.services import crm_sync
from syncbridge.services.context import SyncContext, get_sync_context
from syncbridge.services.dispatcher import WEBHOOK_PATH
from syncbridge.services.inbound import run_inbound_event


router = APIRouter(prefix=WEBHOOK_PATH, tags=["sync-webhooks"])


@router.post("/{event_kind}")
async def ingest_dev_event(
    event_kind: str,
    request: Request,
    peer_origin: str = Depends(require_sync_key),
    ctx: SyncContext = Depends(get_sync_context),
):
    """Apply an event sent by the Dev platform."""
    return await run_inbound_event(
        ctx,
        side="crm",
        kind=event_kind,
        raw_body=await request.body(),
        registry=CRM_INBOUND_EVENTS,
        handlers=crm_sync.INBOUND_HANDLERS,
        peer_origin=peer_origin,
    )
