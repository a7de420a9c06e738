"""Dev side of the sync: inbound CRM events and outbound task hooks."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from syncbridge.auth.context import AuthContext
from syncbridge.auth.permissions import TICKET_INTAKE_ROLES
from syncbridge.config import settings
from syncbridge.domain.identity import resolve_linked_organization
from syncbridge.domain.status_mapping import is_terminal_task_status, map_ticket_status_to_task
from syncbridge.errors import NotFoundError, ValidationError
from syncbridge.models.events import (
    AttachmentAddedEvent,
    ChatReplyEvent,
    CommentAddedEvent,
    CustomerPayload,
    CustomerSyncEvent,
    TicketCreatedEvent,
    TicketStatusChangedEvent,
)
from syncbridge.observability import incr_metric, log_event
from syncbridge.realtime import user_channel
from syncbridge.services.attribution import attachment_comment, attributed, excerpt, resolve_comment_author
from syncbridge.services.context import SyncContext
from syncbridge.services.dispatcher import SyncOrigin
from syncbridge.services.notifications import Broadcast
from syncbridge.store import Row, now_iso


SESSION_PREFIX = "dev-"
DEFAULT_TASK_PRIORITY = "MEDIUM"


def _load_task_for_ticket(ctx: SyncContext, ticket_id: str) -> Row:
    task = ctx.store.find_task_by_crm_ticket(ticket_id)
    if not task:
        log_event("sync_task_missing", request_id=ctx.request_id, crm_ticket_id=ticket_id)
        raise NotFoundError("Task not found for ticket", ticketId=ticket_id)
    return task


async def _fan_out_task(ctx: SyncContext, task: Row, *, title: str, body: str, data: dict[str, Any]) -> None:
    """Notify the assignee and broadcast ``task.updated`` once to the organization."""
    broadcast = Broadcast("task.updated", {"task": task})
    assignee_id = task.get("assignee_id")
    if assignee_id:
        await ctx.notifications.notify(
            user_id=assignee_id,
            organization_id=task["organization_id"],
            type="TASK",
            title=title,
            body=body,
            data=data,
            broadcast=broadcast,
        )
    else:
        await ctx.notifications.publish(task["organization_id"], broadcast.event, broadcast.payload)


def _client_fields(customer: CustomerPayload) -> dict[str, Any]:
    return {
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "company": customer.company,
        "notes": customer.notes,
    }


def upsert_client_from_crm(ctx: SyncContext, customer: CustomerPayload, organization_id: str) -> tuple[Row, bool]:
    """Create or refresh the client mirroring a CRM customer. Returns (client, created)."""
    client = ctx.store.find_client_by_crm_customer(customer.id)
    if client:
        updated = ctx.store.update_client(client["id"], _client_fields(customer))
        return updated or {**client, **_client_fields(customer)}, False
    client = ctx.store.insert_client(
        {**_client_fields(customer), "crm_customer_id": customer.id, "organization_id": organization_id}
    )
    return client, True


# local mutations and hooks


async def apply_task_status(ctx: SyncContext, task: Row, new_status: str, *, origin: SyncOrigin) -> Row:
    fields: dict[str, Any] = {"status": new_status}
    if is_terminal_task_status(new_status) and not task.get("completed_at"):
        fields["completed_at"] = now_iso()
    updated = ctx.store.update_task(task["id"], fields) or {**task, **fields}
    on_task_status_changed(ctx, updated, task.get("status"), new_status, origin=origin)
    return updated


def on_task_status_changed(
    ctx: SyncContext,
    task: Row,
    old_status: str | None,
    new_status: str,
    *,
    origin: SyncOrigin,
    completed_by: str | None = None,
) -> bool:
    """Report a task status edit to the CRM. DONE is sent as a completion, anything else as a status change."""
    crm_ticket_id = task.get("crm_ticket_id")
    if old_status == new_status or not crm_ticket_id:
        return False
    if new_status == "DONE":
        return ctx.fire(
            "task-completed",
            {
                "ticketId": crm_ticket_id,
                "taskId": task["id"],
                "taskTitle": task.get("title"),
                "completedBy": completed_by,
                "completedAt": task.get("completed_at") or now_iso(),
            },
            origin=origin,
        )
    return ctx.fire(
        "task-status-changed",
        {"ticketId": crm_ticket_id, "taskId": task["id"], "oldStatus": old_status, "newStatus": new_status},
        origin=origin,
    )


def on_task_comment_added(
    ctx: SyncContext, task: Row, comment: Row, *, author_name: str | None, origin: SyncOrigin
) -> bool:
    if not task.get("crm_ticket_id"):
        return False
    return ctx.fire(
        "comment-added",
        {
            "ticketId": task["crm_ticket_id"],
            "comment": {
                "id": comment.get("id"),
                "content": comment.get("content"),
                "authorName": author_name,
                "createdAt": comment.get("created_at"),
            },
        },
        origin=origin,
    )


def on_task_attachment_added(ctx: SyncContext, task: Row, attachment: Row, *, origin: SyncOrigin) -> bool:
    if not task.get("crm_ticket_id"):
        return False
    return ctx.fire(
        "attachment-added",
        {
            "ticketId": task["crm_ticket_id"],
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


async def send_chat_message(ctx: SyncContext, auth: AuthContext, content: str) -> dict[str, Any]:
    """Forward a support chat message typed by a Dev user to the CRM inbox."""
    content = (content or "").strip()
    if not content:
        raise ValidationError("content is required", fields=["content"])

    user = ctx.store.get_user(auth.user_id)
    organization = ctx.store.get_organization(auth.org_id)
    crm_organization_id = (organization or {}).get("crm_organization_id") or auth.org_id
    payload = {
        "userId": auth.user_id,
        "userName": (user or {}).get("name") or auth.name or "Dev user",
        "content": content,
        "organizationId": crm_organization_id,
    }
    result = await ctx.dispatcher.send("chat-message", payload, request_id=ctx.request_id)
    incr_metric("sync.chat.sent")
    return {"success": True, "sessionId": f"{SESSION_PREFIX}{auth.user_id}", "messageId": result.get("messageId")}


# inbound CRM events


async def handle_customer_sync(ctx: SyncContext, event: CustomerSyncEvent) -> dict[str, Any]:
    organization = resolve_linked_organization(ctx.store, event.organization_id)
    client, created = upsert_client_from_crm(ctx, event.customer, organization.id)
    await ctx.notifications.publish(organization.id, "client.updated", {"client": client})
    log_event("client_synced", request_id=ctx.request_id, client_id=client.get("id"), created=created)
    return {"success": True, "clientId": client.get("id"), "created": created}


async def handle_ticket_created(ctx: SyncContext, event: TicketCreatedEvent) -> dict[str, Any]:
    existing = ctx.store.find_task_by_crm_ticket(event.ticket.id)
    if existing:
        incr_metric("sync.ticket.duplicate")
        return {"success": True, "taskId": existing["id"], "message": "Task already exists"}

    organization = resolve_linked_organization(
        ctx.store, event.organization_id, name_hint=event.customer.company or None
    )
    organization_id = organization.id
    client, _ = upsert_client_from_crm(ctx, event.customer, organization_id)

    project = ctx.store.find_support_project(organization_id, client["id"])
    if not project:
        project = ctx.store.insert_project(
            {
                "name": f"Support {client.get('name')}",
                "kind": "support",
                "status": "ACTIVE",
                "organization_id": organization_id,
                "client_id": client["id"],
            }
        )

    assignee = None
    if event.assignee and event.assignee.email:
        assignee = ctx.store.find_user_by_email(event.assignee.email)
    creator = ctx.store.find_member_by_role(organization_id, ["ADMIN"]) or ctx.store.find_member_by_role(
        organization_id, TICKET_INTAKE_ROLES + ["AGENT", "DEV"]
    )
    creator_id = creator["user_id"] if creator else None

    task = ctx.store.insert_task(
        {
            "title": f"[TICKET] {event.ticket.title}",
            "description": event.ticket.description,
            "status": "BACKLOG",
            "priority": event.ticket.priority or DEFAULT_TASK_PRIORITY,
            "due_date": event.ticket.due_date,
            "crm_ticket_id": event.ticket.id,
            "organization_id": organization_id,
            "project_id": project["id"],
            "assignee_id": assignee["id"] if assignee else None,
            "created_by_id": creator_id,
        }
    )

    for comment in event.comments:
        ctx.store.insert_task_comment(
            {
                "task_id": task["id"],
                "content": f"[{comment.author_name or 'CRM'}] {comment.content}",
                "author_id": creator_id,
            }
        )
    for attachment in event.attachments:
        ctx.store.insert_task_attachment(
            {
                "task_id": task["id"],
                "name": attachment.name,
                "url": attachment.url,
                "type": attachment.type or "application/octet-stream",
                "size": attachment.size or 0,
            }
        )

    ctx.store.insert_activity(
        {
            "type": "CREATED",
            "description": f"Task created from CRM ticket {event.ticket.id}",
            "organization_id": organization_id,
            "task_id": task["id"],
            "user_id": creator_id,
            "metadata": {"crmTicketId": event.ticket.id, "source": "crm"},
        }
    )

    members = ctx.store.list_members_by_role(organization_id, TICKET_INTAKE_ROLES)
    if members:
        for index, member in enumerate(members):
            await ctx.notifications.notify(
                user_id=member["user_id"],
                organization_id=organization_id,
                type="TASK",
                title="New ticket from CRM",
                body=f'"{event.ticket.title}" was sent by the support team.',
                data={"taskId": task["id"], "crmTicketId": event.ticket.id},
                broadcast=Broadcast("task.created", {"task": task}) if index == 0 else None,
            )
    else:
        await ctx.notifications.publish(organization_id, "task.created", {"task": task})

    # The task is a Dev-owned record, so the acknowledgement is a local change.
    ctx.fire(
        "ticket-received",
        {
            "ticketId": event.ticket.id,
            "taskId": task["id"],
            "projectName": project.get("name"),
            "receivedAt": now_iso(),
        },
        origin="local",
    )
    log_event(
        "task_created_from_ticket",
        request_id=ctx.request_id,
        task_id=task["id"],
        crm_ticket_id=event.ticket.id,
        organization_step=organization.step,
    )
    return {"success": True, "taskId": task["id"]}


async def handle_ticket_status_changed(ctx: SyncContext, event: TicketStatusChangedEvent) -> dict[str, Any]:
    task = _load_task_for_ticket(ctx, event.ticket_id)
    ctx.store.insert_activity(
        {
            "type": "STATUS_CHANGE",
            "description": f"CRM ticket status changed: {event.old_status or '?'} -> {event.new_status}",
            "organization_id": task["organization_id"],
            "task_id": task["id"],
            "metadata": {"crmTicketId": event.ticket_id, "oldStatus": event.old_status, "newStatus": event.new_status},
        }
    )

    applied: str | None = None
    if settings.apply_ticket_status_to_tasks:
        applied = map_ticket_status_to_task(event.new_status)
        if applied and applied != task.get("status"):
            task = await apply_task_status(ctx, task, applied, origin="peer")
        else:
            applied = None

    await _fan_out_task(
        ctx,
        task,
        title="CRM ticket status changed",
        body=f'The ticket behind "{task.get("title")}" is now {event.new_status}.',
        data={"taskId": task["id"], "crmTicketId": event.ticket_id, "ticketStatus": event.new_status},
    )
    return {"success": True, "taskId": task["id"], "taskStatus": applied}


async def handle_comment_added(ctx: SyncContext, event: CommentAddedEvent) -> dict[str, Any]:
    task = _load_task_for_ticket(ctx, event.ticket_id)
    comment = ctx.store.insert_task_comment(
        {
            "task_id": task["id"],
            "content": attributed("CRM", event.comment.author_name, event.comment.content, default_author="Support"),
            "author_id": resolve_comment_author(ctx.store, task.get("assignee_id"), task["organization_id"]),
        }
    )
    on_task_comment_added(ctx, task, comment, author_name=event.comment.author_name, origin="peer")

    await _fan_out_task(
        ctx,
        task,
        title="New comment from CRM",
        body=(
            f'{event.comment.author_name or "Support"} commented on "{task.get("title")}": '
            f"{excerpt(event.comment.content)}"
        ),
        data={"taskId": task["id"], "commentId": comment.get("id")},
    )
    return {"success": True, "commentId": comment.get("id")}


async def handle_attachment_added(ctx: SyncContext, event: AttachmentAddedEvent) -> dict[str, Any]:
    task = _load_task_for_ticket(ctx, event.ticket_id)
    attachment = ctx.store.insert_task_attachment(
        {
            "task_id": task["id"],
            "name": event.attachment.name,
            "url": event.attachment.url,
            "type": event.attachment.type or "application/octet-stream",
            "size": event.attachment.size or 0,
        }
    )
    comment = ctx.store.insert_task_comment(
        {
            "task_id": task["id"],
            "content": attachment_comment("CRM", event.attachment.name, event.attachment.url, event.attachment.type),
            "author_id": resolve_comment_author(ctx.store, task.get("assignee_id"), task["organization_id"]),
        }
    )
    on_task_attachment_added(ctx, task, attachment, origin="peer")

    await _fan_out_task(
        ctx,
        task,
        title="New attachment from CRM",
        body=f'{event.attachment.name} was attached to "{task.get("title")}".',
        data={"taskId": task["id"], "attachmentId": attachment.get("id")},
    )
    return {"success": True, "attachmentId": attachment.get("id"), "commentId": comment.get("id")}


async def handle_chat_reply(ctx: SyncContext, event: ChatReplyEvent) -> dict[str, Any]:
    if not event.session_id.startswith(SESSION_PREFIX):
        raise ValidationError("Unknown chat session", sessionId=event.session_id)
    user_id = event.session_id[len(SESSION_PREFIX):]
    delivered = await ctx.notifications.emit_to_room(
        user_channel(user_id),
        "chat_reply",
        {
            "sessionId": event.session_id,
            "content": event.content,
            "agentName": event.agent_name or "Support",
            "timestamp": event.timestamp or now_iso(),
        },
    )
    if not delivered:
        log_event("chat_reply_undelivered", level=logging.INFO, request_id=ctx.request_id, user_id=user_id)
    return {"success": True, "delivered": delivered}


InboundHandler = Callable[[SyncContext, Any], Awaitable[dict[str, Any]]]

INBOUND_HANDLERS: dict[str, InboundHandler] = {
    "customer-created": handle_customer_sync,
    "customer-updated": handle_customer_sync,
    "ticket-created": handle_ticket_created,
    "ticket-status-changed": handle_ticket_status_changed,
    "comment-added": handle_comment_added,
    "attachment-added": handle_attachment_added,
    "chat-reply": handle_chat_reply,
}
