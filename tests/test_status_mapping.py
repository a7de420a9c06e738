import pytest

from syncbridge.domain.status_mapping import (
    is_terminal_ticket_status,
    map_task_status_to_ticket,
    map_ticket_status_to_task,
    needs_resolution_stamp,
)


@pytest.mark.parametrize(
    ("task_status", "ticket_status"),
    [
        ("IN_PROGRESS", "IN_PROGRESS"),
        ("REVIEW", "IN_PROGRESS"),
        ("DONE", "RESOLVED"),
        ("done", "RESOLVED"),
        ("TODO", None),
        ("BACKLOG", None),
        ("SOMETHING_NEW", None),
        (None, None),
    ],
)
def test_task_to_ticket_mapping(task_status, ticket_status):
    assert map_task_status_to_ticket(task_status) == ticket_status


@pytest.mark.parametrize(
    ("ticket_status", "task_status"),
    [
        ("OPEN", "BACKLOG"),
        ("IN_PROGRESS", "IN_PROGRESS"),
        ("RESOLVED", "DONE"),
        ("CLOSED", "DONE"),
        ("REOPENED", "IN_PROGRESS"),
        ("ARCHIVED", None),
    ],
)
def test_ticket_to_task_mapping(ticket_status, task_status):
    assert map_ticket_status_to_task(ticket_status) == task_status


def test_terminal_statuses():
    assert is_terminal_ticket_status("RESOLVED")
    assert is_terminal_ticket_status("CLOSED")
    assert not is_terminal_ticket_status("IN_PROGRESS")


def test_resolution_stamp_is_written_once():
    assert needs_resolution_stamp("RESOLVED", None)
    assert needs_resolution_stamp("DONE", None)
    assert not needs_resolution_stamp("RESOLVED", "2024-01-01T00:00:00+00:00")
    assert not needs_resolution_stamp("IN_PROGRESS", None)
