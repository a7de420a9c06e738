from __future__ import annotations

import json
import logging
from typing import Any

from syncbridge.errors import InternalError, SyncError, ValidationError
from syncbridge.models.events import SyncPayload, parse_event
from syncbridge.observability import incr_metric, log_event
from syncbridge.services.context import SyncContext


async def run_inbound_event(
    ctx: SyncContext,
    *,
    side: str,
    kind: str,
    raw_body: bytes,
    registry: dict[str, type[SyncPayload]],
    handlers: dict[str, Any],
    peer_origin: str | None = None,
) -> dict[str, Any]:
    """Parse, validate and apply one inbound webhook event.

    Every failure leaves here as a SyncError so the app-level handler can
    render it as ``{"success": false, "error", "type"}``.
    """
    incr_metric("webhook.events.received", side=side, event_kind=kind)
    try:
        body = json.loads(raw_body.decode("utf-8")) if raw_body else None
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        incr_metric("webhook.events.rejected", side=side, event_kind=kind, reason="invalid_json")
        raise ValidationError("Invalid JSON payload") from exc

    try:
        event = parse_event(registry, kind, body)
    except ValidationError:
        incr_metric("webhook.events.rejected", side=side, event_kind=kind, reason="invalid_payload")
        raise

    log_event("webhook_received", request_id=ctx.request_id, side=side, event_kind=kind, peer_origin=peer_origin)
    handler = handlers[kind]
    try:
        result = await handler(ctx, event)
    except SyncError as exc:
        incr_metric("webhook.events.failed", side=side, event_kind=kind, error_type=exc.error_type)
        log_event(
            "webhook_failed",
            level=logging.WARNING,
            request_id=ctx.request_id,
            side=side,
            event_kind=kind,
            error=exc.message,
            error_type=exc.error_type,
        )
        raise
    except Exception as exc:
        incr_metric("webhook.events.failed", side=side, event_kind=kind, error_type="internal_error")
        log_event(
            "webhook_crashed",
            level=logging.ERROR,
            request_id=ctx.request_id,
            side=side,
            event_kind=kind,
            error=repr(exc),
        )
        raise InternalError(str(exc) or exc.__class__.__name__) from exc

    incr_metric("webhook.events.processed", side=side, event_kind=kind)
    return result
