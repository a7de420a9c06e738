from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base for errors rendered as structured JSON at the handler boundary."""

    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message, "type": self.error_type}
        if self.details:
            body["details"] = self.details
        return body


class Unauthorized(SyncError):
    status_code = 401
    error_type = "unauthorized"


class ValidationError(SyncError):
    status_code = 400
    error_type = "bad_request"


class NotFoundError(SyncError):
    status_code = 404
    error_type = "not_found"


class TenantNotFound(SyncError):
    status_code = 404
    error_type = "tenant_not_found"


class SyncNotConfigured(SyncError):
    status_code = 503
    error_type = "sync_not_configured"


class PeerUnavailable(SyncError):
    status_code = 502
    error_type = "peer_unavailable"


class InternalError(SyncError):
    status_code = 500
    error_type = "internal_error"
