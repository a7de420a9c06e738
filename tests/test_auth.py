import pytest
from conftest import make_token

from syncbridge.auth import auth_context_from_token
from syncbridge.auth.permissions import CHAT_SEND, TICKETS_SEND_TO_DEV, normalize_role, role_has_permission
from syncbridge.auth.sync_key import check_signature, check_sync_key, sign_body
from syncbridge.errors import SyncNotConfigured, Unauthorized


def test_sync_key_comparison():
    check_sync_key("secret", "secret")
    with pytest.raises(Unauthorized):
        check_sync_key("wrong", "secret")
    with pytest.raises(Unauthorized):
        check_sync_key(None, "secret")
    with pytest.raises(SyncNotConfigured):
        check_sync_key("secret", None)


def test_signature_modes():
    body = b'{"ticketId": "t-1"}'
    signature = sign_body(body, "secret")

    assert check_signature(body, signature, "secret", mode="enforce") is True
    assert check_signature(body, "bad", "secret", mode="permissive_audit") is False
    assert check_signature(body, None, "secret", mode="unknown-mode") is False
    with pytest.raises(Unauthorized):
        check_signature(body, "bad", "secret", mode="enforce")


def test_role_normalization_and_permissions():
    assert normalize_role("owner") == "ADMIN"
    assert normalize_role("support") == "AGENT"
    assert normalize_role("nonsense") == "DEV"
    assert role_has_permission("AGENT", TICKETS_SEND_TO_DEV)
    assert not role_has_permission("DEV", TICKETS_SEND_TO_DEV)
    assert role_has_permission("DEV", CHAT_SEND)


def test_session_token_to_auth_context():
    auth = auth_context_from_token(make_token(user_id="u-1", org_id="o-1", role="manager", name="Mo"))
    assert (auth.user_id, auth.org_id, auth.role, auth.name) == ("u-1", "o-1", "MANAGER", "Mo")
    assert TICKETS_SEND_TO_DEV in auth.permissions


def test_invalid_tokens_are_rejected():
    assert auth_context_from_token(None) is None
    assert auth_context_from_token("not-a-jwt") is None
    assert auth_context_from_token(make_token(type="refresh")) is None
