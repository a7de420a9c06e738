from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from syncbridge.db import get_supabase


Row = dict[str, Any]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(result: Any) -> Row | None:
    data = getattr(result, "data", None) or []
    return data[0] if data else None


class SyncStore:
    """Table access for the sync layer.

    Every read and write the webhook handlers, hooks and fan-out perform goes
    through this class so the handlers never hold module-level state.
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    def _insert(self, table: str, row: Row) -> Row:
        result = self.client.table(table).insert(row).execute()
        inserted = _first(result)
        if inserted is None:
            raise RuntimeError(f"insert into {table} returned no row")
        return inserted

    def _update(self, table: str, row_id: str, fields: Row) -> Row | None:
        return _first(self.client.table(table).update(fields).eq("id", row_id).execute())

    def _get(self, table: str, row_id: str) -> Row | None:
        return _first(self.client.table(table).select("*").eq("id", row_id).execute())

    # organizations

    def get_organization(self, organization_id: str) -> Row | None:
        return self._get("organizations", organization_id)

    def get_oldest_organization(self) -> Row | None:
        return _first(
            self.client.table("organizations").select("*").order("created_at", desc=False).limit(1).execute()
        )

    def find_organization_by_crm_id(self, crm_organization_id: str) -> Row | None:
        return _first(
            self.client.table("organizations")
            .select("*")
            .eq("crm_organization_id", crm_organization_id)
            .limit(1)
            .execute()
        )

    def create_organization(self, row: Row) -> Row:
        return self._insert("organizations", row)

    def find_member_by_role(self, organization_id: str, roles: list[str]) -> Row | None:
        return _first(
            self.client.table("organization_members")
            .select("*")
            .eq("organization_id", organization_id)
            .in_("role", roles)
            .limit(1)
            .execute()
        )

    def list_members_by_role(self, organization_id: str, roles: list[str]) -> list[Row]:
        result = (
            self.client.table("organization_members")
            .select("*")
            .eq("organization_id", organization_id)
            .in_("role", roles)
            .execute()
        )
        return list(result.data or [])

    def get_user(self, user_id: str) -> Row | None:
        return self._get("users", user_id)

    def find_user_by_email(self, email: str) -> Row | None:
        return _first(self.client.table("users").select("*").eq("email", email).limit(1).execute())

    # CRM tickets

    def get_ticket(self, ticket_id: str) -> Row | None:
        return self._get("tickets", ticket_id)

    def update_ticket(self, ticket_id: str, fields: Row) -> Row | None:
        return self._update("tickets", ticket_id, {**fields, "updated_at": now_iso()})

    def get_customer(self, customer_id: str) -> Row | None:
        return self._get("customers", customer_id)

    def list_ticket_comments(self, ticket_id: str) -> list[Row]:
        result = (
            self.client.table("ticket_comments")
            .select("*")
            .eq("ticket_id", ticket_id)
            .order("created_at", desc=False)
            .execute()
        )
        return list(result.data or [])

    def list_ticket_attachments(self, ticket_id: str) -> list[Row]:
        result = self.client.table("ticket_attachments").select("*").eq("ticket_id", ticket_id).execute()
        return list(result.data or [])

    def insert_ticket_comment(self, row: Row) -> Row:
        return self._insert("ticket_comments", row)

    def insert_ticket_attachment(self, row: Row) -> Row:
        return self._insert("ticket_attachments", row)

    # Dev tasks

    def find_task_by_crm_ticket(self, crm_ticket_id: str) -> Row | None:
        return _first(self.client.table("tasks").select("*").eq("crm_ticket_id", crm_ticket_id).limit(1).execute())

    def insert_task(self, row: Row) -> Row:
        return self._insert("tasks", row)

    def update_task(self, task_id: str, fields: Row) -> Row | None:
        return self._update("tasks", task_id, {**fields, "updated_at": now_iso()})

    def insert_task_comment(self, row: Row) -> Row:
        return self._insert("task_comments", row)

    def insert_task_attachment(self, row: Row) -> Row:
        return self._insert("task_attachments", row)

    def find_client_by_crm_customer(self, crm_customer_id: str) -> Row | None:
        return _first(
            self.client.table("clients").select("*").eq("crm_customer_id", crm_customer_id).limit(1).execute()
        )

    def insert_client(self, row: Row) -> Row:
        return self._insert("clients", row)

    def update_client(self, client_id: str, fields: Row) -> Row | None:
        return self._update("clients", client_id, {**fields, "updated_at": now_iso()})

    def find_support_project(self, organization_id: str, client_id: str) -> Row | None:
        return _first(
            self.client.table("projects")
            .select("*")
            .eq("organization_id", organization_id)
            .eq("client_id", client_id)
            .eq("kind", "support")
            .limit(1)
            .execute()
        )

    def insert_project(self, row: Row) -> Row:
        return self._insert("projects", row)

    # shared

    def insert_activity(self, row: Row) -> Row:
        return self._insert("activities", row)

    def insert_notification(self, row: Row) -> Row:
        return self._insert("notifications", row)

    def list_notifications(self, user_id: str, organization_id: str, limit: int = 50) -> list[Row]:
        result = (
            self.client.table("notifications")
            .select("*")
            .eq("user_id", user_id)
            .eq("organization_id", organization_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return list(result.data or [])

    def mark_notification_read(self, notification_id: str, user_id: str) -> Row | None:
        return _first(
            self.client.table("notifications")
            .update({"read": True})
            .eq("id", notification_id)
            .eq("user_id", user_id)
            .execute()
        )

    def mark_all_notifications_read(self, user_id: str, organization_id: str) -> int:
        result = (
            self.client.table("notifications")
            .update({"read": True})
            .eq("user_id", user_id)
            .eq("organization_id", organization_id)
            .eq("read", False)
            .execute()
        )
        return len(result.data or [])

    # CRM inbox

    def find_conversation_by_session(self, session_id: str) -> Row | None:
        return _first(
            self.client.table("conversations").select("*").eq("session_id", session_id).limit(1).execute()
        )

    def insert_conversation(self, row: Row) -> Row:
        return self._insert("conversations", row)

    def update_conversation(self, conversation_id: str, fields: Row) -> Row | None:
        return self._update("conversations", conversation_id, {**fields, "updated_at": now_iso()})

    def insert_message(self, row: Row) -> Row:
        return self._insert("messages", row)


def get_store() -> SyncStore:
    return SyncStore(get_supabase())
