from conftest import auth_headers


def _seed(db):
    db.tables["notifications"] = [
        {
            "id": "n-1",
            "user_id": "user-1",
            "organization_id": "org-1",
            "type": "TICKET",
            "title": "Older",
            "body": "first",
            "data": {"ticketId": "t-1"},
            "read": False,
            "created_at": "2024-01-01T00:00:00+00:00",
        },
        {
            "id": "n-2",
            "user_id": "user-1",
            "organization_id": "org-1",
            "type": "TICKET",
            "title": "Newer",
            "body": "second",
            "data": {},
            "read": False,
            "created_at": "2024-01-02T00:00:00+00:00",
        },
        {
            "id": "n-3",
            "user_id": "user-2",
            "organization_id": "org-1",
            "type": "TICKET",
            "title": "Someone else",
            "body": "third",
            "data": {},
            "read": False,
            "created_at": "2024-01-03T00:00:00+00:00",
        },
    ]


def test_list_returns_own_notifications_newest_first(crm_client, db):
    _seed(db)
    response = crm_client.get("/api/notifications/", headers=auth_headers())
    assert response.status_code == 200
    assert [row["id"] for row in response.json()] == ["n-2", "n-1"]


def test_list_requires_session(crm_client):
    response = crm_client.get("/api/notifications/")
    assert response.status_code == 401


def test_mark_read_only_touches_own_notification(crm_client, db):
    _seed(db)
    own = crm_client.post("/api/notifications/n-1/read", headers=auth_headers())
    other = crm_client.post("/api/notifications/n-3/read", headers=auth_headers())

    assert own.status_code == 200
    assert own.json()["read"] is True
    assert other.status_code == 404
    assert db.rows("notifications")[2]["read"] is False


def test_mark_all_read(dev_client, db):
    _seed(db)
    response = dev_client.post("/api/notifications/read-all", headers=auth_headers(role="DEV"))
    assert response.status_code == 200
    assert response.json() == {"success": True, "updated": 2}
    assert [row["read"] for row in db.rows("notifications")] == [True, True, False]
