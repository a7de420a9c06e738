import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from syncbridge.config import settings
from syncbridge.errors import InternalError, SyncError
from syncbridge.observability import log_event
from syncbridge.routers import chat, crm_webhooks, dev_webhooks, internal, notifications, realtime, tickets
from syncbridge.services.dispatcher import build_dispatcher

PLATFORM_ROLES = ("crm", "dev")


def create_app(role: str | None = None) -> FastAPI:
    """Build the sync service for one side of the pair.

    ``crm`` mounts the Dev-event webhooks and ticket hand-off; ``dev`` mounts
    the CRM-event webhooks and support chat. Both expose notifications,
    the WebSocket hub and internal metrics.
    """
    role = (role or settings.platform_role).strip().lower()
    if role not in PLATFORM_ROLES:
        raise ValueError(f"PLATFORM_ROLE must be one of {PLATFORM_ROLES}, got {role!r}")

    dispatcher = build_dispatcher(role=role)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_event("service_started", role=role, peer_configured=bool(dispatcher.base_url))
        yield
        await dispatcher.drain()

    app = FastAPI(title=f"Sync Bridge ({role})", version="0.1.0", lifespan=lifespan)
    app.state.role = role
    app.state.dispatcher = dispatcher

    origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def attach_request_id(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid4())
        )
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_event(
            "request_crashed",
            level=logging.ERROR,
            request_id=getattr(request.state, "request_id", None),
            path=request.url.path,
            error=repr(exc),
        )
        error = InternalError(str(exc) or exc.__class__.__name__)
        return JSONResponse(status_code=error.status_code, content=error.to_body())

    if role == "crm":
        app.include_router(crm_webhooks.router)
        app.include_router(tickets.router)
    else:
        app.include_router(dev_webhooks.router)
        app.include_router(chat.router)
    app.include_router(notifications.router)
    app.include_router(realtime.router)
    app.include_router(internal.router)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": settings.service_name, "role": role}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
