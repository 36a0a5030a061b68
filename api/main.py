"""
api/main.py -- FastAPI application factory for shared-libs services.

create_app(config) builds the app around an already-loaded AppConfig. The
config is stored on app.state.config and read by the auth dependencies, so
request handling never touches a global. asgi.py loads the configuration and
calls create_app(); tests call create_app() with a hand-built AppConfig.

Run with:  uvicorn asgi:app

Middleware stack (outermost to innermost):
  1. log_requests      -- one access-log line per request
  2. CORSMiddleware    -- origins from AppConfig.allowed_origins
  3. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan connects the database (fatal on failure) and creates the audit
store on startup; shutdown closes the store and disposes the engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.audit import router as audit_router
from api.routes.v1.auth import router as auth_router
from audit.store import AuditStore
from core.config import AppConfig
from core.database import connect_db, ping

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sharedlibs.api")


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Connect the database and create the audit store.

    DatabaseConnectionError from connect_db() propagates and aborts startup.
    """
    config: AppConfig = app.state.config
    logger.info("API starting up (env=%s, mode=%s)", config.app_env, config.mode.value)
    engine = connect_db(config.mongo_uri, config.db_name)
    try:
        app.state.audit_store = AuditStore(engine=engine)
    except Exception:
        engine.dispose()
        raise
    logger.info("Audit store initialized (collection=%s)", app.state.audit_store.collection)

    yield

    app.state.audit_store.close()
    engine.dispose()
    logger.info("API shutdown complete")


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and Retry-After when a limit trips."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when path or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers and auth dependencies raise HTTPException with a
    {"code", "message"} dict as detail. A dict is used directly as the error
    field; anything else is wrapped with a generic http_<status> code.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The stack trace goes to the log only; the client receives a generic
    message so internals are not leaked.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# No auth and no rate limit. Sync so the database ping runs in the threadpool.
# ---------------------------------------------------------------------------


def health(request: Request) -> HealthResponse:
    """Return liveness, library version, config mode and database status."""
    config: AppConfig = request.app.state.config
    database = "ok"
    try:
        ping(request.app.state.audit_store.engine)
    except SQLAlchemyError:
        logger.warning("Health check: database ping failed")
        database = "error"
    return HealthResponse(
        status="healthy",
        version=config.version,
        config_mode=config.mode.value,
        components={"app": "ok", "database": database},
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(config: AppConfig) -> FastAPI:
    """Assemble the API for an already-loaded configuration."""
    app = FastAPI(
        title="shared-libs API",
        description="Audit trail and identity endpoints shared by tenant services.",
        version=config.version,
        lifespan=lifespan,
    )
    app.state.config = config

    # add_middleware() wraps outermost-last: CORS ends up outside SlowAPI.
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.middleware("http")(log_requests)

    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    app.include_router(audit_router, prefix="/api/v1", tags=["Audit"])
    app.add_api_route("/api/v1/health", health, methods=["GET"], tags=["Health"], response_model=HealthResponse)

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    return app
