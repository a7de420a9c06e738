from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from syncbridge.auth import require_sync_key
from syncbridge.observability import metric_total, metrics_snapshot
from syncbridge.realtime import get_realtime


router = APIRouter(prefix="/internal/sync", tags=["internal-sync"])


@router.get("/metrics")
async def get_sync_metrics(request: Request, _origin: str = Depends(require_sync_key)):
    """In-process counters for this deployment. Reset on restart."""
    snapshot = metrics_snapshot()
    return {
        "role": request.app.state.role,
        "totals": {
            "webhooks_received": metric_total(snapshot, "webhook.events.received"),
            "webhooks_failed": metric_total(snapshot, "webhook.events.failed"),
            "dispatch_sent": metric_total(snapshot, "sync.dispatch.sent"),
            "dispatch_failed": metric_total(snapshot, "sync.dispatch.failed"),
            "dispatch_suppressed": metric_total(snapshot, "sync.dispatch.suppressed"),
        },
        "connections": get_realtime().get_total_connections(),
        "counters": snapshot,
    }
