from __future__ import annotations

from syncbridge.auth.permissions import COMMENT_FALLBACK_ROLES
from syncbridge.store import SyncStore


def resolve_comment_author(store: SyncStore, assignee_id: str | None, organization_id: str) -> str | None:
    """Local user a peer-authored comment is filed under.

    Assignee first, then any organization admin, otherwise no author. A
    made-up "system" id would violate the author foreign key.
    """
    if assignee_id:
        return assignee_id
    admin = store.find_member_by_role(organization_id, COMMENT_FALLBACK_ROLES)
    if admin:
        return admin["user_id"]
    return None


def attributed(source: str, author_name: str | None, content: str, *, default_author: str) -> str:
    return f"[{source} - {author_name or default_author}]: {content}"


def attachment_comment(source: str, name: str, url: str, content_type: str | None) -> str:
    if content_type and content_type.startswith("image/"):
        return f"[{source} Attachment] 📷 Image: {name}\n![{name}]({url})"
    return f"[{source} Attachment] 📎 File: [{name}]({url})"


def excerpt(content: str, limit: int = 50) -> str:
    return content if len(content) <= limit else f"{content[:limit]}..."
