from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from syncbridge.config import settings
from syncbridge.main import create_app
from syncbridge.observability import reset_metrics
from syncbridge.realtime import get_realtime
from syncbridge.services.context import SyncContext, get_dispatcher
from syncbridge.services.dispatcher import PeerDispatcher
from syncbridge.services.notifications import NotificationService
from syncbridge.store import SyncStore, get_store


SYNC_KEY = "test-sync-key"
_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table_name: str, db: "FakeSupabase"):
        self.table_name = table_name
        self.db = db
        self.operation = "select"
        self.insert_payload = None
        self.update_payload = None
        self.filters = []
        self.order_by: tuple[str, bool] | None = None
        self.limit_count: int | None = None

    def select(self, _fields: str):
        self.operation = "select"
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.insert_payload = payload
        return self

    def update(self, payload: dict):
        self.operation = "update"
        self.update_payload = payload
        return self

    def eq(self, key: str, value):
        self.filters.append(("eq", key, value))
        return self

    def in_(self, key: str, values):
        self.filters.append(("in", key, list(values)))
        return self

    def is_(self, key: str, value):
        self.filters.append(("is", key, value))
        return self

    def order(self, key: str, desc: bool = False):
        self.order_by = (key, desc)
        return self

    def limit(self, count: int):
        self.limit_count = count
        return self

    def _matches(self, row: dict) -> bool:
        for kind, key, value in self.filters:
            if kind == "eq" and row.get(key) != value:
                return False
            if kind == "in" and row.get(key) not in value:
                return False
            if kind == "is" and value == "null" and row.get(key) is not None:
                return False
        return True

    def execute(self):
        table = self.db.tables.setdefault(self.table_name, [])
        if self.operation == "insert":
            payloads = self.insert_payload if isinstance(self.insert_payload, list) else [self.insert_payload]
            inserted = []
            for payload in payloads:
                row = dict(payload or {})
                row.setdefault("id", f"{self.table_name}-{len(table) + 1}")
                row.setdefault("created_at", self.db.next_timestamp())
                table.append(row)
                inserted.append(dict(row))
            return FakeResponse(inserted)

        if self.operation == "update":
            updated = []
            for row in table:
                if self._matches(row):
                    row.update(self.update_payload or {})
                    updated.append(dict(row))
            return FakeResponse(updated)

        rows = [dict(row) for row in table if self._matches(row)]
        if self.order_by:
            key, desc = self.order_by
            rows.sort(key=lambda row: row.get(key) or "", reverse=desc)
        if self.limit_count is not None:
            rows = rows[: self.limit_count]
        return FakeResponse(rows)


class FakeSupabase:
    def __init__(self, tables: dict):
        self.tables = tables
        self._clock = 0

    def table(self, table_name: str):
        return FakeQuery(table_name, self)

    def next_timestamp(self) -> str:
        self._clock += 1
        return (_BASE_TIME + timedelta(seconds=self._clock)).isoformat()

    def rows(self, table_name: str) -> list[dict]:
        return self.tables.setdefault(table_name, [])


class RecordingDispatcher(PeerDispatcher):
    """Real scheduling and loop-guard logic; the network hop is replaced by a log of calls."""

    def __init__(self, role: str, replies: dict[str, Any] | None = None):
        super().__init__(role=role, base_url="http://peer.test", sync_key=SYNC_KEY)
        self.replies = replies or {}
        self.fired: list[tuple[str, dict, str, bool]] = []
        self.sent: list[tuple[str, dict]] = []

    def fire(self, kind, payload, *, origin, background_tasks=None, request_id=None):
        scheduled = super().fire(
            kind, payload, origin=origin, background_tasks=background_tasks, request_id=request_id
        )
        self.fired.append((kind, payload, origin, scheduled))
        return scheduled

    async def send(self, kind, payload, *, request_id=None):
        self._check_kind(kind)
        self.sent.append((kind, payload))
        reply = self.replies.get(kind, {"success": True})
        if isinstance(reply, Exception):
            raise reply
        return reply

    def kinds_scheduled(self) -> list[str]:
        return [kind for kind, _payload, _origin, scheduled in self.fired if scheduled]


class RecordingRealtime:
    def __init__(self):
        self.emitted: list[tuple[str, str, Any]] = []

    async def emit(self, room: str, event: str, data: Any) -> int:
        self.emitted.append((room, event, data))
        return 1

    def events_for(self, room: str) -> list[str]:
        return [event for emitted_room, event, _ in self.emitted if emitted_room == room]


def make_token(user_id: str = "user-1", org_id: str = "org-1", role: str = "ADMIN", **claims) -> str:
    payload = {
        "sub": user_id,
        "org_id": org_id,
        "role": role,
        "type": "session",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(**kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(**kwargs)}"}


def sync_headers(key: str = SYNC_KEY) -> dict[str, str]:
    return {"X-Sync-Key": key}


@pytest.fixture(autouse=True)
def _sync_settings(monkeypatch):
    monkeypatch.setattr(settings, "sync_key", SYNC_KEY)
    monkeypatch.setattr(settings, "peer_base_url", "http://peer.test")
    monkeypatch.setattr(settings, "legacy_organization_ids", "")
    monkeypatch.setattr(settings, "fallback_organization_id", None)
    monkeypatch.setattr(settings, "apply_ticket_status_to_tasks", False)
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def db():
    return FakeSupabase({})


@pytest.fixture
def realtime():
    return RecordingRealtime()


def _client_for(role: str, db: FakeSupabase, realtime: RecordingRealtime, dispatcher: RecordingDispatcher):
    app = create_app(role)
    app.state.dispatcher = dispatcher
    app.dependency_overrides[get_store] = lambda: SyncStore(db)
    app.dependency_overrides[get_realtime] = lambda: realtime
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    return TestClient(app)


@pytest.fixture
def crm_dispatcher():
    return RecordingDispatcher("crm")


@pytest.fixture
def dev_dispatcher():
    return RecordingDispatcher("dev")


@pytest.fixture
def crm_client(db, realtime, crm_dispatcher):
    return _client_for("crm", db, realtime, crm_dispatcher)


@pytest.fixture
def dev_client(db, realtime, dev_dispatcher):
    return _client_for("dev", db, realtime, dev_dispatcher)


def make_context(db: FakeSupabase, realtime: RecordingRealtime, dispatcher: PeerDispatcher) -> SyncContext:
    store = SyncStore(db)
    return SyncContext(store=store, notifications=NotificationService(store, realtime), dispatcher=dispatcher)
