from __future__ import annotations

from typing import Final

LEGACY_ROLE_ALIASES: Final[dict[str, str]] = {
    "SUPER_ADMIN": "ADMIN",
    "OWNER": "ADMIN",
    "SUPPORT": "AGENT",
    "DEVELOPER": "DEV",
}

CANONICAL_ROLES: Final[set[str]] = {"ADMIN", "MANAGER", "AGENT", "DEV"}

# Members notified when the CRM sends a new ticket to the Dev platform.
TICKET_INTAKE_ROLES: Final[list[str]] = ["ADMIN", "MANAGER"]
# Members a peer-authored comment may be attributed to when the entity has no assignee.
COMMENT_FALLBACK_ROLES: Final[list[str]] = ["ADMIN"]

TICKETS_SEND_TO_DEV: Final[str] = "tickets.send_to_dev"
CHAT_SEND: Final[str] = "chat.send"
NOTIFICATIONS_READ: Final[str] = "notifications.read"

ROLE_PERMISSION_BUNDLES: Final[dict[str, set[str]]] = {
    "ADMIN": {TICKETS_SEND_TO_DEV, CHAT_SEND, NOTIFICATIONS_READ},
    "MANAGER": {TICKETS_SEND_TO_DEV, CHAT_SEND, NOTIFICATIONS_READ},
    "AGENT": {TICKETS_SEND_TO_DEV, NOTIFICATIONS_READ},
    "DEV": {CHAT_SEND, NOTIFICATIONS_READ},
}


def normalize_role(role: str | None) -> str:
    value = str(role or "").strip().upper()
    value = LEGACY_ROLE_ALIASES.get(value, value)
    return value if value in CANONICAL_ROLES else "DEV"


def permissions_for_role(role: str | None) -> set[str]:
    return set(ROLE_PERMISSION_BUNDLES.get(normalize_role(role), set()))


def role_has_permission(role: str | None, permission: str) -> bool:
    return permission in permissions_for_role(role)
