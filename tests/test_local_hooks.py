import asyncio

from conftest import FakeSupabase, RecordingDispatcher, RecordingRealtime, make_context
from fastapi import BackgroundTasks

from syncbridge.services import crm_sync, dev_sync


def _ctx(role: str, tables: dict | None = None):
    dispatcher = RecordingDispatcher(role)
    ctx = make_context(FakeSupabase(tables or {}), RecordingRealtime(), dispatcher)
    ctx.background_tasks = BackgroundTasks()
    return ctx, dispatcher


def test_customer_saved_fires_created_or_updated():
    ctx, dispatcher = _ctx("crm")
    customer = {"id": "cust-1", "organization_id": "org-1", "name": "ACME", "email": "ops@acme.test"}

    assert crm_sync.on_customer_saved(ctx, customer, created=True, origin="local") is True
    assert crm_sync.on_customer_saved(ctx, customer, created=False, origin="local") is True

    assert dispatcher.kinds_scheduled() == ["customer-created", "customer-updated"]
    payload = dispatcher.fired[0][1]
    assert payload["organizationId"] == "org-1"
    assert payload["customer"]["email"] == "ops@acme.test"


def test_internal_ticket_comments_stay_local():
    ctx, dispatcher = _ctx("crm")
    ticket = {"id": "t-1", "organization_id": "org-1"}

    assert crm_sync.on_ticket_comment_added(
        ctx, ticket, {"id": "c-1", "content": "note", "is_internal": True}, author_name="Alice", origin="local"
    ) is False
    assert crm_sync.on_ticket_comment_added(
        ctx, ticket, {"id": "c-2", "content": "public"}, author_name="Alice", origin="local"
    ) is True
    assert dispatcher.kinds_scheduled() == ["comment-added"]


def test_ticket_status_hook_needs_a_linked_task_and_a_change():
    ctx, dispatcher = _ctx("crm")
    unlinked = {"id": "t-1", "linked_task_id": None}
    linked = {"id": "t-2", "linked_task_id": "task-1"}

    assert crm_sync.on_ticket_status_changed(ctx, unlinked, "OPEN", "CLOSED", origin="local") is False
    assert crm_sync.on_ticket_status_changed(ctx, linked, "OPEN", "OPEN", origin="local") is False
    assert crm_sync.on_ticket_status_changed(ctx, linked, "OPEN", "CLOSED", origin="local") is True
    assert dispatcher.fired[-1][1] == {"ticketId": "t-2", "oldStatus": "OPEN", "newStatus": "CLOSED"}


def test_inbox_reply_is_forwarded_only_for_dev_sessions():
    ctx, dispatcher = _ctx("crm")

    assert crm_sync.reply_to_dev_chat(ctx, "whatsapp-5511", "Hi", agent_name="Alice", origin="local") is False
    assert crm_sync.reply_to_dev_chat(ctx, "dev-u-9", "Hi", agent_name="Alice", origin="local") is True
    kind, payload, _, _ = dispatcher.fired[-1]
    assert kind == "chat-reply"
    assert payload["sessionId"] == "dev-u-9"
    assert payload["agentName"] == "Alice"


def test_local_ticket_status_edit_stamps_and_reports():
    tables = {"tickets": [{"id": "t-1", "status": "IN_PROGRESS", "linked_task_id": "task-1", "resolved_at": None}]}
    ctx, dispatcher = _ctx("crm", tables)

    updated = asyncio.run(crm_sync.apply_ticket_status(ctx, tables["tickets"][0].copy(), "CLOSED", origin="local"))

    assert updated["status"] == "CLOSED"
    assert updated["resolved_at"]
    assert dispatcher.kinds_scheduled() == ["ticket-status-changed"]


def test_task_done_is_reported_as_completion_other_statuses_as_changes():
    tables = {"tasks": [{"id": "task-1", "title": "Fix", "status": "TODO", "crm_ticket_id": "t-1"}]}
    ctx, dispatcher = _ctx("dev", tables)

    task = asyncio.run(dev_sync.apply_task_status(ctx, tables["tasks"][0].copy(), "REVIEW", origin="local"))
    asyncio.run(dev_sync.apply_task_status(ctx, task, "DONE", origin="local"))

    assert dispatcher.kinds_scheduled() == ["task-status-changed", "task-completed"]
    completed = dispatcher.fired[-1][1]
    assert completed["ticketId"] == "t-1"
    assert completed["completedAt"] == tables["tasks"][0]["completed_at"]


def test_tasks_without_crm_ticket_are_not_reported():
    ctx, dispatcher = _ctx("dev")
    task = {"id": "task-2", "status": "TODO", "crm_ticket_id": None}

    assert dev_sync.on_task_status_changed(ctx, task, "TODO", "DONE", origin="local") is False
    assert dev_sync.on_task_comment_added(ctx, task, {"id": "c-1", "content": "x"}, author_name=None, origin="local") is False
    assert dev_sync.on_task_attachment_added(ctx, task, {"id": "a-1", "name": "f", "url": "u"}, origin="local") is False
    assert dispatcher.fired == []
