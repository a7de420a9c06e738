from conftest import sync_headers

from syncbridge.observability import incr_metric


def test_metrics_require_sync_key(crm_client):
    assert crm_client.get("/internal/sync/metrics").status_code == 401


def test_metrics_snapshot_reports_totals(crm_client, db):
    incr_metric("sync.dispatch.sent", endpoint="comment-added")
    incr_metric("sync.dispatch.sent", endpoint="chat-reply")
    incr_metric("sync.dispatch.suppressed", endpoint="ticket-status-changed")

    response = crm_client.get("/internal/sync/metrics", headers=sync_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "crm"
    assert body["totals"]["dispatch_sent"] == 2
    assert body["totals"]["dispatch_suppressed"] == 1
    assert body["counters"]["sync.dispatch.sent|endpoint=chat-reply"] == 1


def test_webhook_traffic_is_counted(dev_client):
    dev_client.post(
        "/webhooks/peer/chat-reply",
        json={"sessionId": "dev-u-1", "content": "Hi"},
        headers=sync_headers(),
    )
    body = dev_client.get("/internal/sync/metrics", headers=sync_headers()).json()
    assert body["totals"]["webhooks_received"] == 1
    assert body["totals"]["webhooks_failed"] == 0


def test_health_and_root(crm_client, dev_client):
    assert crm_client.get("/health").json() == {"status": "healthy"}
    assert dev_client.get("/").json()["role"] == "dev"
    assert crm_client.get("/health").headers["X-Request-ID"]
