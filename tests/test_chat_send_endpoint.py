import pytest
from conftest import RecordingDispatcher, auth_headers

from syncbridge.errors import PeerUnavailable


@pytest.fixture
def dev_dispatcher():
    return RecordingDispatcher("dev", replies={"chat-message": {"success": True, "messageId": "msg-1"}})


def _seed(db):
    db.tables.update(
        {
            "organizations": [{"id": "dev-org", "name": "Dev Org", "crm_organization_id": "org-1"}],
            "users": [{"id": "d-eng", "name": "Bob Engineer", "email": "bob@dev.test"}],
        }
    )


def test_chat_send_forwards_to_crm_with_linked_organization(dev_client, db, dev_dispatcher):
    _seed(db)
    response = dev_client.post(
        "/api/chat/send",
        json={"content": "The export button is gone"},
        headers=auth_headers(user_id="d-eng", org_id="dev-org", role="DEV"),
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "sessionId": "dev-d-eng", "messageId": "msg-1"}
    assert dev_dispatcher.sent == [
        (
            "chat-message",
            {
                "userId": "d-eng",
                "userName": "Bob Engineer",
                "content": "The export button is gone",
                "organizationId": "org-1",
            },
        )
    ]


def test_chat_send_uses_own_org_when_not_linked(dev_client, db, dev_dispatcher):
    response = dev_client.post(
        "/api/chat/send",
        json={"content": "Hello"},
        headers=auth_headers(user_id="d-new", org_id="solo-org", role="DEV", name="Nia"),
    )
    assert response.status_code == 200
    _, payload = dev_dispatcher.sent[0]
    assert payload["organizationId"] == "solo-org"
    assert payload["userName"] == "Nia"


def test_chat_send_surfaces_peer_failure(dev_client, db, dev_dispatcher):
    _seed(db)
    dev_dispatcher.replies["chat-message"] = PeerUnavailable("Peer connectivity error", endpoint="chat-message")
    response = dev_client.post(
        "/api/chat/send",
        json={"content": "Hello"},
        headers=auth_headers(user_id="d-eng", org_id="dev-org", role="DEV"),
    )
    assert response.status_code == 502
    assert response.json()["success"] is False


def test_chat_send_rejects_empty_content(dev_client, dev_dispatcher):
    response = dev_client.post(
        "/api/chat/send",
        json={"content": ""},
        headers=auth_headers(role="DEV"),
    )
    assert response.status_code == 422
    assert dev_dispatcher.sent == []


def test_chat_send_is_not_mounted_on_crm(crm_client):
    response = crm_client.post("/api/chat/send", json={"content": "Hello"}, headers=auth_headers())
    assert response.status_code == 404
