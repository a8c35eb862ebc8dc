import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from .auth.oidc import oidc_startup_event
from .auth.session import identity_from_request
from .config import is_rls_enforced
from .db import (
    get_session_ctx,
    init_db,
    is_postgres,
    reset_current_user_id,
    set_current_user_id,
)
from .db_admin import enable_rls
from .errors import register_error_handlers
from .observability.logging import bind_request_id, bind_user_id, setup_logging
from .observability.metrics import metrics_endpoint, request_metrics_middleware
from .observability.sentry import init_sentry
from .realtime.feed import get_change_feed
from .routers import auth, bookmarks, status, views


logger = logging.getLogger(__name__)


def _log_rls_details(details) -> None:
    if not isinstance(details, dict):
        logger.warning("Unexpected response while enabling RLS policies: %r", details)
        return
    for table_name, table_details in details.get("tables", {}).items():
        if table_details.get("error"):
            logger.error(
                "RLS enablement error for table '%s': %s (hint: %s)",
                table_name,
                table_details["error"],
                table_details.get("hint") or "n/a",
            )
        missing = [name for name, ok in table_details.get("policies", {}).items() if not ok]
        if missing:
            logger.warning("Missing RLS policies for table '%s': %s", table_name, ", ".join(missing))
    if details.get("ok"):
        logger.info("Postgres row-level security policies ensured during startup")
    else:
        logger.warning("Postgres row-level security enforcement is incomplete; review the prior log messages")


def ensure_rls_startup_task() -> None:
    with get_session_ctx() as session:
        try:
            details = enable_rls(session)
        except Exception:  # noqa: BLE001
            session.rollback()
            logger.exception("Failed to ensure Postgres row-level security during startup; continuing")
            return
    _log_rls_details(details)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup work is blocking (JWKS fetch, DDL), so it runs off the event loop.
    await run_in_threadpool(oidc_startup_event)
    await run_in_threadpool(init_db)
    if app.state.rls_enforced and not is_postgres():
        logger.warning("RLS_ENFORCE is set but the database is not Postgres; skipping RLS bootstrap.")
    elif app.state.rls_enforced:
        await run_in_threadpool(ensure_rls_startup_task)
    try:
        yield
    finally:
        app.state.change_feed.close_all()


def create_app() -> FastAPI:
    tags_metadata = [
        {"name": "status", "description": "Service and database health"},
        {"name": "bookmarks", "description": "Create, delete and follow bookmarks"},
        {"name": "auth", "description": "Sign-in and sign-out"},
        {"name": "v1", "description": "Versioned API endpoints"},
    ]
    app = FastAPI(title="Smart Bookmarks", version="0.1.0", openapi_tags=tags_metadata, lifespan=lifespan)
    app.state.rls_enforced = is_rls_enforced()
    app.state.change_feed = get_change_feed()

    register_error_handlers(app)
    setup_logging()
    init_sentry(app)

    # CORS from environment configuration
    origins = os.getenv("CORS_ALLOW_ORIGINS", "")
    allow_origins = [o.strip() for o in origins.split(",") if o.strip()]
    if allow_origins:
        allow_credentials = os.getenv("CORS_ALLOW_CREDENTIALS", "1") in ("1", "true", "TRUE")
        allow_methods = os.getenv("CORS_ALLOW_METHODS", "GET,POST,DELETE")
        allow_headers = os.getenv("CORS_ALLOW_HEADERS", "*")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=allow_credentials,
            allow_methods=[m.strip() for m in allow_methods.split(",") if m.strip()],
            allow_headers=[h.strip() for h in allow_headers.split(",") if h.strip()],
        )
    app.middleware("http")(request_metrics_middleware)

    @app.middleware("http")
    async def add_request_id(request, call_next):
        rid = request.headers.get("X-Request-Id")
        bind_request_id(rid)
        response = await call_next(request)
        if rid:
            response.headers["X-Request-Id"] = rid
        return response

    @app.middleware("http")
    async def bind_identity(request: Request, call_next):
        # Resolve once per request in the threadpool (token checks may fetch JWKS);
        # the guard dependencies reuse request.state.
        identity = await run_in_threadpool(identity_from_request, request)
        user_id = identity.user_id if identity else None
        bind_user_id(user_id)
        ctx_token = set_current_user_id(user_id) if app.state.rls_enforced else None
        try:
            return await call_next(request)
        finally:
            if ctx_token is not None:
                reset_current_user_id(ctx_token)

    app.include_router(status.router)
    app.include_router(auth.router)
    app.include_router(views.router)
    app.include_router(bookmarks.router, prefix="/v1", tags=["v1"])
    app.include_router(status.router, prefix="/v1", tags=["v1"])
    app.add_api_route("/metrics", metrics_endpoint, include_in_schema=False)

    return app


app = create_app()
