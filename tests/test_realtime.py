import asyncio
import json

import pytest
from conftest import make_token
from starlette.websockets import WebSocketDisconnect

from syncbridge.realtime import ConnectionManager, get_realtime, is_reserved_room, org_channel, user_channel


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.fail = fail
        self.sent: list[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))


def test_room_names():
    assert user_channel("u-1") == "user_u-1"
    assert org_channel("o-1") == "org_o-1"
    assert is_reserved_room("user_u-1") and is_reserved_room("org_o-1")
    assert not is_reserved_room("dev-u-1")


def test_emit_reaches_only_room_members():
    manager = ConnectionManager()
    alice, bob = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        await manager.connect(alice, ["user_alice", "org_acme"])
        await manager.connect(bob, ["user_bob", "org_acme"])
        org_count = await manager.emit("org_acme", "ticket.updated", {"ticket": {"id": "t-1"}})
        user_count = await manager.emit("user_alice", "notification", {"id": "n-1"})
        nobody = await manager.emit("user_carol", "notification", {})
        return org_count, user_count, nobody

    assert asyncio.run(scenario()) == (2, 1, 0)
    assert alice.accepted and bob.accepted
    assert [message["event"] for message in alice.sent] == ["ticket.updated", "notification"]
    assert [message["event"] for message in bob.sent] == ["ticket.updated"]
    assert manager.get_total_connections() == 2


def test_closed_sockets_are_dropped_on_emit():
    manager = ConnectionManager()
    healthy, broken = FakeWebSocket(), FakeWebSocket(fail=True)

    async def scenario():
        await manager.connect(healthy, ["org_acme"])
        await manager.connect(broken, ["org_acme"])
        return await manager.emit("org_acme", "notification", {})

    assert asyncio.run(scenario()) == 1
    assert manager.room_size("org_acme") == 1


def test_disconnect_leaves_every_room():
    manager = ConnectionManager()
    ws = FakeWebSocket()

    async def scenario():
        await manager.connect(ws, ["user_alice", "org_acme"])
        await manager.join(ws, "dev-alice")
        await manager.disconnect(ws)

    asyncio.run(scenario())
    assert manager.get_total_connections() == 0
    assert manager.room_size("dev-alice") == 0


def test_websocket_rejects_missing_token(crm_client):
    with pytest.raises(WebSocketDisconnect):
        with crm_client.websocket_connect("/ws"):
            pass


def test_websocket_joins_session_rooms_but_not_reserved_ones(crm_client):
    token = make_token(user_id="agent-7", org_id="org-1", role="AGENT")
    with crm_client.websocket_connect(f"/ws?token={token}") as websocket:
        websocket.send_text(json.dumps({"action": "join", "room": "dev-u-9"}))
        assert websocket.receive_json() == {"event": "joined", "data": {"room": "dev-u-9"}}
        assert get_realtime().room_size("dev-u-9") == 1
        assert get_realtime().room_size("user_agent-7") == 1

        websocket.send_text(json.dumps({"action": "join", "room": "org_other"}))
        refused = websocket.receive_json()
        assert refused["event"] == "error"
        assert refused["data"]["room"] == "org_other"

        websocket.send_text("ping")
        assert websocket.receive_text() == "pong"

        websocket.send_text(json.dumps({"action": "leave", "room": "dev-u-9"}))
        assert websocket.receive_json()["event"] == "left"
        assert get_realtime().room_size("dev-u-9") == 0
