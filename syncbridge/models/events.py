from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from syncbridge.errors import ValidationError


class SyncPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class CommentPayload(SyncPayload):
    content: str = Field(min_length=1)
    author_name: str | None = Field(default=None, alias="authorName")
    id: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")
    is_internal: bool = Field(default=False, alias="isInternal")


class AttachmentPayload(SyncPayload):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    type: str | None = None
    size: int | None = None
    id: str | None = None


# Dev -> CRM


class TicketReceivedEvent(SyncPayload):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    task_id: str = Field(alias="taskId", min_length=1)
    project_name: str | None = Field(default=None, alias="projectName")
    received_at: str | None = Field(default=None, alias="receivedAt")


class TaskCompletedEvent(SyncPayload):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    task_id: str = Field(alias="taskId", min_length=1)
    task_title: str | None = Field(default=None, alias="taskTitle")
    completed_by: str | None = Field(default=None, alias="completedBy")
    completed_at: str | None = Field(default=None, alias="completedAt")


class TaskStatusChangedEvent(SyncPayload):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    new_status: str = Field(alias="newStatus", min_length=1)
    task_id: str | None = Field(default=None, alias="taskId")
    old_status: str | None = Field(default=None, alias="oldStatus")


class CommentAddedEvent(SyncPayload):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    comment: CommentPayload


class AttachmentAddedEvent(SyncPayload):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    attachment: AttachmentPayload


class ChatMessageEvent(SyncPayload):
    user_id: str = Field(alias="userId", min_length=1)
    user_name: str = Field(alias="userName", min_length=1)
    content: str = Field(min_length=1)
    organization_id: str = Field(alias="organizationId", min_length=1)


# CRM -> Dev


class CustomerPayload(SyncPayload):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    notes: str | None = None


class CustomerSyncEvent(SyncPayload):
    customer: CustomerPayload
    organization_id: str = Field(alias="organizationId", min_length=1)


class TicketPayload(SyncPayload):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    due_date: str | None = Field(default=None, alias="dueDate")


class AssigneePayload(SyncPayload):
    id: str | None = None
    name: str | None = None
    email: str | None = None


class TicketCreatedEvent(SyncPayload):
    ticket: TicketPayload
    organization_id: str = Field(alias="organizationId", min_length=1)
    customer: CustomerPayload
    assignee: AssigneePayload | None = None
    comments: list[CommentPayload] = Field(default_factory=list)
    attachments: list[AttachmentPayload] = Field(default_factory=list)


class TicketStatusChangedEvent(SyncPayload):
    ticket_id: str = Field(alias="ticketId", min_length=1)
    new_status: str = Field(alias="newStatus", min_length=1)
    old_status: str | None = Field(default=None, alias="oldStatus")


class ChatReplyEvent(SyncPayload):
    session_id: str = Field(alias="sessionId", min_length=1)
    content: str = Field(min_length=1)
    agent_name: str | None = Field(default=None, alias="agentName")
    timestamp: str | None = None


CRM_INBOUND_EVENTS: dict[str, type[SyncPayload]] = {
    "ticket-received": TicketReceivedEvent,
    "task-completed": TaskCompletedEvent,
    "task-status-changed": TaskStatusChangedEvent,
    "comment-added": CommentAddedEvent,
    "attachment-added": AttachmentAddedEvent,
    "chat-message": ChatMessageEvent,
}

DEV_INBOUND_EVENTS: dict[str, type[SyncPayload]] = {
    "customer-created": CustomerSyncEvent,
    "customer-updated": CustomerSyncEvent,
    "ticket-created": TicketCreatedEvent,
    "ticket-status-changed": TicketStatusChangedEvent,
    "comment-added": CommentAddedEvent,
    "attachment-added": AttachmentAddedEvent,
    "chat-reply": ChatReplyEvent,
}

_EventT = TypeVar("_EventT", bound=SyncPayload)


def _field_path(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc)


def parse_payload(model: type[_EventT], body: Any) -> _EventT:
    if not isinstance(body, dict):
        raise ValidationError("JSON object body required")
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        fields = sorted({_field_path(error["loc"]) for error in exc.errors()})
        raise ValidationError(f"Missing or invalid fields: {', '.join(fields)}", fields=fields) from exc


def parse_event(registry: dict[str, type[SyncPayload]], kind: str, body: Any) -> SyncPayload:
    model = registry.get(kind)
    if model is None:
        raise ValidationError(f"Unsupported event kind: {kind}", supported=sorted(registry))
    return parse_payload(model, body)
