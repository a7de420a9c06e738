from __future__ import annotations

from fastapi import APIRouter, Depends

from syncbridge.auth import AuthContext, require_permission
from syncbridge.auth.permissions import TICKETS_SEND_TO_DEV
from syncbridge.models.sync_actions import SendToDevResponse
from syncbridge.services import crm_sync
from syncbridge.services.context import SyncContext, get_sync_context


router = APIRouter(prefix="/api/tickets", tags=["tickets"])


@router.post("/{ticket_id}/send-to-dev", response_model=SendToDevResponse, response_model_by_alias=True)
async def send_ticket_to_dev(
    ticket_id: str,
    auth: AuthContext = Depends(require_permission(TICKETS_SEND_TO_DEV)),
    ctx: SyncContext = Depends(get_sync_context),
):
    result = await crm_sync.send_ticket_to_dev(ctx, ticket_id, auth)
    return SendToDevResponse(success=result["success"], task_id=result["taskId"], message=result.get("message"))
