from __future__ import annotations

from fastapi import APIRouter, Depends

from syncbridge.auth import AuthContext, require_permission
from syncbridge.auth.permissions import CHAT_SEND
from syncbridge.models.sync_actions import ChatSendRequest, ChatSendResponse
from syncbridge.services import dev_sync
from syncbridge.services.context import SyncContext, get_sync_context


router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/send", response_model=ChatSendResponse, response_model_by_alias=True)
async def send_support_message(
    data: ChatSendRequest,
    auth: AuthContext = Depends(require_permission(CHAT_SEND)),
    ctx: SyncContext = Depends(get_sync_context),
):
    """Send a message to the CRM support inbox. The reply arrives as a ``chat_reply`` event."""
    result = await dev_sync.send_chat_message(ctx, auth, data.content)
    return ChatSendResponse(
        success=result["success"],
        session_id=result["sessionId"],
        message_id=result.get("messageId"),
    )
