from __future__ import annotations

from typing import Literal


TicketStatus = Literal["OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED"]
TaskStatus = Literal["BACKLOG", "TODO", "IN_PROGRESS", "REVIEW", "DONE"]

TERMINAL_TICKET_STATUSES: frozenset[str] = frozenset({"RESOLVED", "CLOSED"})
TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"DONE"})

_TASK_TO_TICKET: dict[str, TicketStatus] = {
    "IN_PROGRESS": "IN_PROGRESS",
    "REVIEW": "IN_PROGRESS",
    "DONE": "RESOLVED",
}

# Only consulted when the Dev deployment opts in to mirroring ticket status.
_TICKET_TO_TASK: dict[str, TaskStatus] = {
    "OPEN": "BACKLOG",
    "IN_PROGRESS": "IN_PROGRESS",
    "RESOLVED": "DONE",
    "CLOSED": "DONE",
    "REOPENED": "IN_PROGRESS",
}


def _key(value: str | None) -> str:
    return str(value or "").strip().upper()


def map_task_status_to_ticket(value: str | None) -> TicketStatus | None:
    """Ticket status for a remote task status, or None when the ticket must be left alone."""
    return _TASK_TO_TICKET.get(_key(value))


def map_ticket_status_to_task(value: str | None) -> TaskStatus | None:
    return _TICKET_TO_TASK.get(_key(value))


def is_terminal_ticket_status(value: str | None) -> bool:
    return _key(value) in TERMINAL_TICKET_STATUSES


def is_terminal_task_status(value: str | None) -> bool:
    return _key(value) in TERMINAL_TASK_STATUSES


def needs_resolution_stamp(status: str | None, resolved_at: str | None) -> bool:
    """resolved_at is written once, the first time a terminal status is reached."""
    return resolved_at is None and (is_terminal_ticket_status(status) or is_terminal_task_status(status))
