"""
WebSocket endpoint for real-time fan-out.

Authenticates with the session token in ``?token=``. On connect the socket
joins ``user_{id}`` and ``org_{id}``; a chat window then sends
``{"action": "join", "room": "<session id>"}`` to follow a conversation.
"""

import json

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from syncbridge.auth import auth_context_from_token
from syncbridge.observability import incr_metric, log_event
from syncbridge.realtime import get_realtime, is_reserved_room, org_channel, user_channel

router = APIRouter(tags=["realtime"])


async def _handle_client_message(websocket: WebSocket, raw: str) -> None:
    manager = get_realtime()
    if raw == "ping":
        await websocket.send_text("pong")
        return
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await websocket.send_text(json.dumps({"event": "error", "data": {"error": "Invalid JSON"}}))
        return

    action = message.get("action") if isinstance(message, dict) else None
    room = str(message.get("room") or "").strip() if isinstance(message, dict) else ""
    if action not in ("join", "leave") or not room:
        await websocket.send_text(json.dumps({"event": "error", "data": {"error": "Unsupported message"}}))
        return
    if is_reserved_room(room):
        # user_ and org_ rooms are assigned from the token, never on request.
        await websocket.send_text(json.dumps({"event": "error", "data": {"error": "Room not allowed", "room": room}}))
        return

    if action == "join":
        await manager.join(websocket, room)
    else:
        await manager.leave(websocket, room)
    await websocket.send_text(json.dumps({"event": "joined" if action == "join" else "left", "data": {"room": room}}))


@router.websocket("/ws")
async def websocket_events(websocket: WebSocket, token: str | None = Query(None)):
    auth = auth_context_from_token(token)
    if not auth:
        incr_metric("realtime.auth.rejected")
        await websocket.close(code=4001, reason="Authentication required")
        return

    manager = get_realtime()
    await manager.connect(websocket, [user_channel(auth.user_id), org_channel(auth.org_id)])
    log_event("realtime_connected", user_id=auth.user_id, organization_id=auth.org_id)

    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            await _handle_client_message(websocket, raw)
    finally:
        await manager.disconnect(websocket)
        log_event("realtime_disconnected", user_id=auth.user_id)
