from __future__ import annotations

import hashlib
import hmac
import logging

from fastapi import Request

from syncbridge.config import settings
from syncbridge.errors import SyncNotConfigured, Unauthorized
from syncbridge.observability import incr_metric, log_event


SYNC_KEY_HEADER = "X-Sync-Key"
API_KEY_HEADER = "X-Api-Key"
SIGNATURE_HEADER = "X-Sync-Signature"
ORIGIN_HEADER = "X-Sync-Origin"
_SIGNATURE_MODES = {"permissive_audit", "enforce"}


def sign_body(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def check_sync_key(provided: str | None, expected: str | None) -> None:
    """Raise unless ``provided`` matches the configured shared secret."""
    if not expected:
        raise SyncNotConfigured("sync key is not configured")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise Unauthorized("Unauthorized")


def check_signature(raw_body: bytes, signature: str | None, secret: str, *, mode: str) -> bool:
    """Validate the body HMAC; only ``enforce`` mode turns a mismatch into an error."""
    if mode not in _SIGNATURE_MODES:
        mode = "permissive_audit"
    valid = bool(signature) and hmac.compare_digest(sign_body(raw_body, secret), str(signature))
    if valid:
        return True
    incr_metric("sync.signature.invalid", mode=mode, missing=not signature)
    if mode == "enforce":
        raise Unauthorized("Invalid sync signature")
    return False


async def require_sync_key(request: Request) -> str:
    """Dependency gating every inbound webhook; returns the caller's declared origin."""
    provided = request.headers.get(SYNC_KEY_HEADER) or request.headers.get(API_KEY_HEADER)
    try:
        check_sync_key(provided, settings.sync_key)
    except Unauthorized:
        incr_metric("webhook.auth.rejected", path=request.url.path)
        log_event(
            "sync_auth_failed",
            level=logging.WARNING,
            request_id=getattr(request.state, "request_id", None),
            path=request.url.path,
            key_present=bool(provided),
        )
        raise

    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not check_signature(raw_body, signature, settings.sync_key, mode=settings.sync_signature_mode):
        log_event(
            "sync_signature_mismatch",
            level=logging.WARNING,
            request_id=getattr(request.state, "request_id", None),
            path=request.url.path,
            signature_present=bool(signature),
        )
    return request.headers.get(ORIGIN_HEADER) or "unknown"
