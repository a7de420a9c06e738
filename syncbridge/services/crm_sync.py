"""CRM side of the sync: inbound Dev events and outbound ticket hooks."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from syncbridge.auth.context import AuthContext
from syncbridge.domain.identity import resolve_organization
from syncbridge.domain.status_mapping import map_task_status_to_ticket, needs_resolution_stamp
from syncbridge.errors import NotFoundError, PeerUnavailable, ValidationError
from syncbridge.models.events import (
    AttachmentAddedEvent,
    ChatMessageEvent,
    CommentAddedEvent,
    TaskCompletedEvent,
    TaskStatusChangedEvent,
    TicketReceivedEvent,
)
from syncbridge.observability import incr_metric, log_event
from syncbridge.services.attribution import attachment_comment, attributed, excerpt, resolve_comment_author
from syncbridge.services.context import SyncContext
from syncbridge.services.dispatcher import SyncOrigin
from syncbridge.services.notifications import Broadcast
from syncbridge.store import Row, now_iso


DEV_SESSION_PREFIX = "dev-"


def chat_session_id(remote_user_id: str) -> str:
    return f"{DEV_SESSION_PREFIX}{remote_user_id}"


def _load_ticket(ctx: SyncContext, ticket_id: str) -> Row:
    ticket = ctx.store.get_ticket(ticket_id)
    if not ticket:
        log_event("sync_ticket_missing", request_id=ctx.request_id, ticket_id=ticket_id)
        raise NotFoundError("Ticket not found", ticketId=ticket_id)
    return ticket


async def _fan_out_ticket(
    ctx: SyncContext,
    ticket: Row,
    *,
    title: str,
    body: str,
    data: dict[str, Any],
    event: str = "ticket.updated",
    payload: dict[str, Any] | None = None,
) -> None:
    """Notify the assignee and broadcast once to the ticket's organization."""
    broadcast = Broadcast(event, payload if payload is not None else {"ticket": ticket})
    assignee_id = ticket.get("assigned_to_id")
    if assignee_id:
        await ctx.notifications.notify(
            user_id=assignee_id,
            organization_id=ticket["organization_id"],
            type="TICKET",
            title=title,
            body=body,
            data=data,
            broadcast=broadcast,
        )
    else:
        await ctx.notifications.publish(ticket["organization_id"], broadcast.event, broadcast.payload)


# local mutations and hooks


async def apply_ticket_status(ctx: SyncContext, ticket: Row, new_status: str, *, origin: SyncOrigin) -> Row:
    """Write a ticket status; stamps resolved_at the first time a terminal status is reached."""
    fields: dict[str, Any] = {"status": new_status}
    if needs_resolution_stamp(new_status, ticket.get("resolved_at")):
        fields["resolved_at"] = now_iso()
    updated = ctx.store.update_ticket(ticket["id"], fields) or {**ticket, **fields}
    on_ticket_status_changed(ctx, updated, ticket.get("status"), new_status, origin=origin)
    return updated


def on_ticket_status_changed(
    ctx: SyncContext, ticket: Row, old_status: str | None, new_status: str, *, origin: SyncOrigin
) -> bool:
    """Tell the Dev platform about a status edit. Informational only: the peer decides what to do."""
    if old_status == new_status or not ticket.get("linked_task_id"):
        return False
    return ctx.fire(
        "ticket-status-changed",
        {"ticketId": ticket["id"], "oldStatus": old_status, "newStatus": new_status},
        origin=origin,
    )


def on_ticket_comment_added(
    ctx: SyncContext, ticket: Row, comment: Row, *, author_name: str | None, origin: SyncOrigin
) -> bool:
    if comment.get("is_internal"):
        return False
    return ctx.fire(
        "comment-added",
        {
            "ticketId": ticket["id"],
            "comment": {
                "id": comment.get("id"),
                "content": comment.get("content"),
                "authorName": author_name,
                "createdAt": comment.get("created_at"),
            },
        },
        origin=origin,
    )


def on_ticket_attachment_added(ctx: SyncContext, ticket: Row, attachment: Row, *, origin: SyncOrigin) -> bool:
    return ctx.fire(
        "attachment-added",
        {
            "ticketId": ticket["id"],
            "attachment": {
                "id": attachment.get("id"),
                "name": attachment.get("name"),
                "url": attachment.get("url"),
                "type": attachment.get("type"),
                "size": attachment.get("size"),
            },
        },
        origin=origin,
    )


def on_customer_saved(ctx: SyncContext, customer: Row, *, created: bool, origin: SyncOrigin) -> bool:
    return ctx.fire(
        "customer-created" if created else "customer-updated",
        {
            "customer": {
                "id": customer["id"],
                "name": customer.get("name"),
                "email": customer.get("email"),
                "phone": customer.get("phone"),
                "company": customer.get("company"),
                "notes": customer.get("notes"),
            },
            "organizationId": customer["organization_id"],
        },
        origin=origin,
    )


def reply_to_dev_chat(
    ctx: SyncContext, session_id: str, content: str, *, agent_name: str | None, origin: SyncOrigin
) -> bool:
    """Relay an inbox reply to a Dev platform user; other sessions are not ours to forward."""
    if not session_id.startswith(DEV_SESSION_PREFIX):
        return False
    return ctx.fire(
        "chat-reply",
        {"sessionId": session_id, "content": content, "agentName": agent_name, "timestamp": now_iso()},
        origin=origin,
    )


def _user_name(ctx: SyncContext, user_id: str | None, cache: dict[str, str | None]) -> str | None:
    if not user_id:
        return None
    if user_id not in cache:
        user = ctx.store.get_user(user_id)
        cache[user_id] = user.get("name") if user else None
    return cache[user_id]


async def send_ticket_to_dev(ctx: SyncContext, ticket_id: str, auth: AuthContext) -> dict[str, Any]:
    """Create the Dev task for a ticket and link it.

    Awaited, unlike the other hooks: linked_task_id is only written once the
    peer has answered with a task id.
    """
    ticket = _load_ticket(ctx, ticket_id)
    if ticket.get("organization_id") != auth.org_id:
        raise NotFoundError("Ticket not found", ticketId=ticket_id)
    if ticket.get("linked_task_id"):
        return {"success": True, "taskId": ticket["linked_task_id"], "message": "Ticket already sent"}

    names: dict[str, str | None] = {}
    customer = ctx.store.get_customer(ticket["customer_id"]) if ticket.get("customer_id") else None
    if not customer:
        raise ValidationError("Ticket has no customer", ticketId=ticket_id)
    assignee = ctx.store.get_user(ticket["assigned_to_id"]) if ticket.get("assigned_to_id") else None
    payload = {
        "ticket": {
            "id": ticket["id"],
            "title": ticket.get("title"),
            "description": ticket.get("description"),
            "priority": ticket.get("priority"),
            "status": ticket.get("status"),
            "dueDate": ticket.get("due_date"),
        },
        "customer": {
            "id": customer["id"],
            "name": customer.get("name"),
            "email": customer.get("email"),
            "phone": customer.get("phone"),
            "company": customer.get("company"),
        },
        "assignee": {"id": assignee["id"], "name": assignee.get("name"), "email": assignee.get("email")}
        if assignee
        else None,
        "comments": [
            {
                "id": comment.get("id"),
                "content": comment.get("content"),
                "authorName": _user_name(ctx, comment.get("author_id"), names) or "CRM user",
                "createdAt": comment.get("created_at"),
                "isInternal": bool(comment.get("is_internal")),
            }
            for comment in ctx.store.list_ticket_comments(ticket_id)
        ],
        "attachments": [
            {
                "id": attachment.get("id"),
                "name": attachment.get("name"),
                "url": attachment.get("url"),
                "type": attachment.get("type"),
                "size": attachment.get("size"),
            }
            for attachment in ctx.store.list_ticket_attachments(ticket_id)
        ],
        "organizationId": ticket["organization_id"],
    }

    result = await ctx.dispatcher.send("ticket-created", payload, request_id=ctx.request_id)
    task_id = result.get("taskId")
    if not task_id:
        raise PeerUnavailable("Dev platform did not return a task id", endpoint="ticket-created")

    # The Dev side already knows about this state, so nothing is echoed back.
    updated = ctx.store.update_ticket(ticket_id, {"linked_task_id": task_id, "status": "IN_PROGRESS"}) or ticket
    ctx.store.insert_activity(
        {
            "type": "SYSTEM",
            "description": f"Ticket sent to development (task {task_id})",
            "organization_id": ticket["organization_id"],
            "ticket_id": ticket_id,
            "customer_id": ticket.get("customer_id"),
            "user_id": auth.user_id,
            "metadata": {"devTaskId": task_id},
        }
    )
    await ctx.notifications.publish(ticket["organization_id"], "ticket.updated", {"ticket": updated})
    incr_metric("sync.ticket.sent_to_dev")
    log_event("ticket_sent_to_dev", request_id=ctx.request_id, ticket_id=ticket_id, task_id=task_id)
    return {"success": True, "message": "Sent to development", "taskId": task_id}


# inbound Dev events


async def handle_ticket_received(ctx: SyncContext, event: TicketReceivedEvent) -> dict[str, Any]:
    ticket = _load_ticket(ctx, event.ticket_id)
    received_at = event.received_at or now_iso()
    await _fan_out_ticket(
        ctx,
        ticket,
        title="Ticket received by Development",
        body=f'The ticket "{ticket.get("title")}" was received by the development team.',
        data={"ticketId": ticket["id"], "taskId": event.task_id},
        event="ticket.received-by-dev",
        payload={
            "ticketId": ticket["id"],
            "taskId": event.task_id,
            "projectName": event.project_name,
            "receivedAt": received_at,
        },
    )
    return {"success": True, "message": "Notification sent"}


async def handle_task_completed(ctx: SyncContext, event: TaskCompletedEvent) -> dict[str, Any]:
    ticket = _load_ticket(ctx, event.ticket_id)
    updated = await apply_ticket_status(ctx, ticket, "RESOLVED", origin="peer")

    ctx.store.insert_activity(
        {
            "type": "SYSTEM",
            "description": (
                "Ticket resolved automatically - development task completed "
                f"({event.task_title or event.task_id})"
            ),
            "organization_id": ticket["organization_id"],
            "ticket_id": ticket["id"],
            "customer_id": ticket.get("customer_id"),
            "user_id": ticket.get("created_by_id"),
            "metadata": {"taskId": event.task_id, "completedBy": event.completed_by},
        }
    )

    await _fan_out_ticket(
        ctx,
        updated,
        title="Development task completed",
        body=f'The ticket "{ticket.get("title")}" was resolved. The development task was completed.',
        data={"ticketId": ticket["id"], "taskId": event.task_id},
    )

    creator_id = ticket.get("created_by_id")
    if creator_id and creator_id != ticket.get("assigned_to_id"):
        await ctx.notifications.notify(
            user_id=creator_id,
            organization_id=ticket["organization_id"],
            type="TICKET",
            title="Ticket resolved",
            body=f'Your ticket "{ticket.get("title")}" was resolved by the development team.',
            data={"ticketId": ticket["id"]},
            broadcast=None,
        )

    log_event("ticket_resolved_by_peer", request_id=ctx.request_id, ticket_id=ticket["id"], task_id=event.task_id)
    return {
        "success": True,
        "message": "Ticket updated successfully",
        "ticketId": ticket["id"],
        "newStatus": "RESOLVED",
    }


async def handle_task_status_changed(ctx: SyncContext, event: TaskStatusChangedEvent) -> dict[str, Any]:
    ticket = _load_ticket(ctx, event.ticket_id)
    new_ticket_status = map_task_status_to_ticket(event.new_status)
    if new_ticket_status is None:
        incr_metric("sync.status.unmapped", task_status=event.new_status)
        return {"success": True, "message": "Status not mapped"}

    updated = await apply_ticket_status(ctx, ticket, new_ticket_status, origin="peer")
    await _fan_out_ticket(
        ctx,
        updated,
        title="Ticket status updated by Development",
        body=f'"{ticket.get("title")}" is now {new_ticket_status}.',
        data={"ticketId": ticket["id"], "taskId": event.task_id, "taskStatus": event.new_status},
    )
    return {"success": True, "ticketId": ticket["id"], "newStatus": new_ticket_status}


async def handle_comment_added(ctx: SyncContext, event: CommentAddedEvent) -> dict[str, Any]:
    ticket = _load_ticket(ctx, event.ticket_id)
    author_id = resolve_comment_author(ctx.store, ticket.get("assigned_to_id"), ticket["organization_id"])
    comment = ctx.store.insert_ticket_comment(
        {
            "ticket_id": ticket["id"],
            "content": attributed("Dev", event.comment.author_name, event.comment.content, default_author="Development"),
            "is_internal": False,
            "author_id": author_id,
        }
    )
    on_ticket_comment_added(ctx, ticket, comment, author_name=event.comment.author_name, origin="peer")

    await _fan_out_ticket(
        ctx,
        ticket,
        title="New comment from Development",
        body=(
            f'{event.comment.author_name or "Dev"} commented on "{ticket.get("title")}": '
            f"{excerpt(event.comment.content)}"
        ),
        data={"ticketId": ticket["id"], "commentId": comment.get("id"), "action": "view"},
    )
    return {"success": True, "commentId": comment.get("id")}


async def handle_attachment_added(ctx: SyncContext, event: AttachmentAddedEvent) -> dict[str, Any]:
    ticket = _load_ticket(ctx, event.ticket_id)
    attachment = ctx.store.insert_ticket_attachment(
        {
            "ticket_id": ticket["id"],
            "name": event.attachment.name,
            "url": event.attachment.url,
            "type": event.attachment.type or "application/octet-stream",
            "size": event.attachment.size or 0,
        }
    )
    ctx.store.insert_ticket_comment(
        {
            "ticket_id": ticket["id"],
            "content": attachment_comment("Dev", event.attachment.name, event.attachment.url, event.attachment.type),
            "is_internal": False,
            "author_id": resolve_comment_author(ctx.store, ticket.get("assigned_to_id"), ticket["organization_id"]),
        }
    )
    on_ticket_attachment_added(ctx, ticket, attachment, origin="peer")

    await _fan_out_ticket(
        ctx,
        ticket,
        title="New attachment from Development",
        body=f'{event.attachment.name} was attached to the ticket "{ticket.get("title")}".',
        data={"ticketId": ticket["id"], "attachmentId": attachment.get("id"), "action": "view"},
    )
    return {"success": True, "attachmentId": attachment.get("id")}


async def handle_chat_message(ctx: SyncContext, event: ChatMessageEvent) -> dict[str, Any]:
    resolved = resolve_organization(ctx.store, event.organization_id)
    organization_id = resolved.id
    session_id = chat_session_id(event.user_id)

    conversation = ctx.store.find_conversation_by_session(session_id)
    if not conversation:
        conversation = ctx.store.insert_conversation(
            {
                "session_id": session_id,
                "platform": "WEB",
                "customer_name": event.user_name,
                "customer_contact": session_id,
                "status": "ACTIVE",
                "organization_id": organization_id,
                "metadata": {
                    "source": "dev",
                    "devUserId": event.user_id,
                    "devOrganizationId": event.organization_id,
                },
            }
        )
    else:
        changes: dict[str, Any] = {}
        if conversation.get("status") != "ACTIVE":
            changes["status"] = "ACTIVE"
        if conversation.get("organization_id") != organization_id:
            changes["organization_id"] = organization_id
        if changes:
            conversation = ctx.store.update_conversation(conversation["id"], changes) or {**conversation, **changes}

    message = ctx.store.insert_message(
        {
            "conversation_id": conversation["id"],
            "content": event.content,
            "sender": "USER",
            "sender_name": event.user_name,
            "status": "SENT",
        }
    )

    message_obj = {
        "id": message.get("id"),
        "sessionId": session_id,
        "from": event.user_name,
        "content": event.content,
        "platform": "web",
        "sender": "user",
        "timestamp": message.get("created_at") or now_iso(),
        "status": "sent",
    }
    await ctx.notifications.publish(organization_id, "inbox_update", {"sessionId": session_id, "message": message_obj})
    await ctx.notifications.emit_to_room(session_id, "new_message", message_obj)

    log_event(
        "chat_message_received",
        request_id=ctx.request_id,
        session_id=session_id,
        organization_id=organization_id,
        resolution_step=resolved.step,
    )
    return {"success": True, "messageId": message.get("id")}


InboundHandler = Callable[[SyncContext, Any], Awaitable[dict[str, Any]]]

INBOUND_HANDLERS: dict[str, InboundHandler] = {
    "ticket-received": handle_ticket_received,
    "task-completed": handle_task_completed,
    "task-status-changed": handle_task_status_changed,
    "comment-added": handle_comment_added,
    "attachment-added": handle_attachment_added,
    "chat-message": handle_chat_message,
}
