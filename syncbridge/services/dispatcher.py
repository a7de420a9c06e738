from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Literal, Protocol

import httpx
from fastapi import BackgroundTasks

from syncbridge.auth.sync_key import ORIGIN_HEADER, SIGNATURE_HEADER, SYNC_KEY_HEADER, sign_body
from syncbridge.config import settings
from syncbridge.errors import PeerUnavailable
from syncbridge.observability import incr_metric, log_event


SyncOrigin = Literal["local", "peer"]

WEBHOOK_PATH = "/webhooks/peer"

OUTBOUND_EVENT_KINDS: dict[str, frozenset[str]] = {
    "crm": frozenset(
        {
            "customer-created",
            "customer-updated",
            "ticket-created",
            "ticket-status-changed",
            "comment-added",
            "attachment-added",
            "chat-reply",
        }
    ),
    "dev": frozenset(
        {
            "ticket-received",
            "task-completed",
            "task-status-changed",
            "comment-added",
            "attachment-added",
            "chat-message",
        }
    ),
}

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class RetryPolicy(Protocol):
    max_attempts: int

    def delay_for(self, attempt: int) -> float: ...


class NoRetry:
    max_attempts = 1

    def delay_for(self, attempt: int) -> float:
        return 0.0


class ExponentialBackoff:
    def __init__(self, max_attempts: int = 3, base_delay: float = 0.25, max_delay: float = 2.0) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * 0.2)


def retry_policy_from_settings() -> RetryPolicy:
    if settings.sync_retry_max_attempts <= 1:
        return NoRetry()
    return ExponentialBackoff(
        max_attempts=settings.sync_retry_max_attempts,
        base_delay=settings.sync_retry_base_delay_seconds,
        max_delay=settings.sync_retry_max_delay_seconds,
    )


class PeerDispatcher:
    """Sends signed webhook events to the peer deployment.

    ``fire`` is the fire-and-forget path used after local writes: the caller
    never awaits the peer and never sees its failures. ``send`` is the
    awaited path for the few actions that need the peer's answer.
    """

    def __init__(
        self,
        *,
        role: str,
        base_url: str | None,
        sync_key: str | None,
        timeout_seconds: float = 5.0,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.role = role
        self.base_url = base_url.rstrip("/") if base_url else None
        self.sync_key = sync_key
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or NoRetry()
        self.transport = transport
        self._pending: set[asyncio.Task] = set()

    def _endpoint(self, kind: str) -> str:
        return f"{self.base_url}{WEBHOOK_PATH}/{kind}"

    def _check_kind(self, kind: str) -> None:
        allowed = OUTBOUND_EVENT_KINDS.get(self.role, frozenset())
        if kind not in allowed:
            raise ValueError(f"{self.role} deployment cannot send '{kind}' events")

    def _headers(self, raw_body: bytes, request_id: str | None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            SYNC_KEY_HEADER: self.sync_key or "",
            SIGNATURE_HEADER: sign_body(raw_body, self.sync_key or ""),
            ORIGIN_HEADER: self.role,
        }
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def _post_with_retry(self, url: str, raw_body: bytes, headers: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            for attempt in range(1, self.retry_policy.max_attempts + 1):
                try:
                    response = await client.post(url, content=raw_body, headers=headers)
                except httpx.HTTPError:
                    if attempt >= self.retry_policy.max_attempts:
                        raise
                    await asyncio.sleep(self.retry_policy.delay_for(attempt))
                    continue
                if response.status_code in _RETRYABLE_STATUS_CODES and attempt < self.retry_policy.max_attempts:
                    await asyncio.sleep(self.retry_policy.delay_for(attempt))
                    continue
                return response

    async def send(self, kind: str, payload: dict[str, Any], *, request_id: str | None = None) -> dict[str, Any]:
        """POST an event and return the peer's JSON answer; raises PeerUnavailable on any failure."""
        self._check_kind(kind)
        if not self.base_url or not self.sync_key:
            raise PeerUnavailable("Peer sync is not configured", endpoint=kind)

        raw_body = json.dumps(payload, default=str).encode("utf-8")
        try:
            response = await self._post_with_retry(self._endpoint(kind), raw_body, self._headers(raw_body, request_id))
        except httpx.HTTPError as exc:
            incr_metric("sync.dispatch.failed", endpoint=kind, reason="connectivity")
            raise PeerUnavailable(f"Peer connectivity error: {exc}", endpoint=kind) from exc

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:200]}

        if response.status_code >= 400:
            incr_metric("sync.dispatch.failed", endpoint=kind, reason=f"http_{response.status_code}")
            message = body.get("error") if isinstance(body, dict) else None
            raise PeerUnavailable(
                message or f"Peer returned HTTP {response.status_code}",
                endpoint=kind,
                status_code=response.status_code,
            )

        incr_metric("sync.dispatch.sent", endpoint=kind)
        log_event("sync_dispatch_sent", request_id=request_id, endpoint=kind, status_code=response.status_code)
        return body if isinstance(body, dict) else {"result": body}

    async def deliver(self, kind: str, payload: dict[str, Any], request_id: str | None = None) -> bool:
        """Background body of ``fire``: never raises."""
        try:
            await self.send(kind, payload, request_id=request_id)
        except Exception as exc:
            log_event(
                "sync_dispatch_failed",
                level=logging.WARNING,
                request_id=request_id,
                endpoint=kind,
                error=str(exc),
            )
            return False
        return True

    def fire(
        self,
        kind: str,
        payload: dict[str, Any],
        *,
        origin: SyncOrigin,
        background_tasks: BackgroundTasks | None = None,
        request_id: str | None = None,
    ) -> bool:
        """Schedule an event without waiting for it. Returns False when nothing was scheduled."""
        if origin == "peer":
            # Changes applied from an inbound webhook are never echoed back.
            incr_metric("sync.dispatch.suppressed", endpoint=kind)
            log_event("sync_dispatch_suppressed", request_id=request_id, endpoint=kind, origin=origin)
            return False
        self._check_kind(kind)
        if not self.base_url:
            log_event("sync_dispatch_skipped", request_id=request_id, endpoint=kind, reason="peer_base_url_missing")
            return False

        if background_tasks is not None:
            background_tasks.add_task(self.deliver, kind, payload, request_id)
            return True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log_event("sync_dispatch_skipped", level=logging.WARNING, endpoint=kind, reason="no_event_loop")
            return False
        task = loop.create_task(self.deliver(kind, payload, request_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def drain(self) -> None:
        """Wait for loop-scheduled deliveries, used on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def build_dispatcher(
    role: str | None = None, transport: httpx.AsyncBaseTransport | None = None
) -> PeerDispatcher:
    return PeerDispatcher(
        role=role or settings.platform_role,
        base_url=settings.peer_base_url,
        sync_key=settings.sync_key,
        timeout_seconds=settings.peer_timeout_seconds,
        retry_policy=retry_policy_from_settings(),
        transport=transport,
    )
