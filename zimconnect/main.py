"""
ZimConnect — FastAPI Application Entry Point

Production-ready application with:
- Async lifespan management (DB pool, change feed transport)
- CORS, timeout, and structured-logging middleware
- Error taxonomy mapped onto HTTP status codes
- Health-check endpoints (liveness + deep readiness)
- Active-request tracking for graceful shutdown
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from zimconnect.config import get_settings
from zimconnect.database import async_session_factory, engine
from zimconnect.errors import (
    FetchFailed,
    LikeFailed,
    NotAuthenticated,
    StaleReference,
    ValidationFailed,
    ZimConnectError,
)
from zimconnect.realtime.feed import close_change_feed, get_change_feed, open_change_feed

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("zimconnect")

# ---------------------------------------------------------------------------
# Active request counter for graceful shutdown
# ---------------------------------------------------------------------------

_active_requests: int = 0
_active_requests_lock = asyncio.Lock()
_shutdown_event = asyncio.Event()

DRAIN_TIMEOUT_SECONDS = 15


async def _increment_active() -> None:
    global _active_requests
    async with _active_requests_lock:
        _active_requests += 1


async def _decrement_active() -> None:
    global _active_requests
    async with _active_requests_lock:
        _active_requests -= 1


async def _drain_active_requests() -> None:
    """Wait until all in-flight requests complete or timeout expires."""
    deadline = time.monotonic() + DRAIN_TIMEOUT_SECONDS
    while True:
        async with _active_requests_lock:
            if _active_requests <= 0:
                break
        if time.monotonic() >= deadline:
            logger.warning(
                "drain_timeout_exceeded",
                remaining_requests=_active_requests,
            )
            break
        await asyncio.sleep(0.25)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of long-lived resources."""
    settings = get_settings()

    # -- Startup --------------------------------------------------------- #
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        log_level=settings.LOG_LEVEL,
        realtime_backend=settings.REALTIME_BACKEND,
    )

    # 1. Database connection pool; issuing a simple query warms the pool.
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_pool_initialised")

    # 2. Change feed (in-process or Redis pub/sub)
    await open_change_feed(settings)

    logger.info("startup_complete")

    yield

    # -- Shutdown -------------------------------------------------------- #
    logger.info("shutdown_begin")

    # 1. Drain in-flight requests
    _shutdown_event.set()
    await _drain_active_requests()

    # 2. Close the change feed (tears down every subscription)
    await close_change_feed()

    # 3. Dispose DB engine (closes the connection pool)
    await engine.dispose()
    logger.info("database_pool_closed")

    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware classes
# ---------------------------------------------------------------------------

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Abort requests that exceed a configurable wall-clock timeout."""

    def __init__(self, app, timeout_seconds: float = 30.0) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await asyncio.wait_for(
                call_next(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={"detail": "Request timed out"},
            )


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()

        await _increment_active()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
            )
            raise
        finally:
            await _decrement_active()

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: list[tuple[type[ZimConnectError], int]] = [
    (NotAuthenticated, 401),
    (StaleReference, 404),
    (LikeFailed, 409),
    (ValidationFailed, 422),
    (FetchFailed, 503),
]


def status_for(exc: ZimConnectError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def zimconnect_error_handler(request: Request, exc: ZimConnectError) -> JSONResponse:
    status_code = status_for(exc)
    body = exc.to_dict()
    if isinstance(exc, LikeFailed) and exc.cause is not None:
        body["cause"] = exc.cause.code
    logger.info(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        status=status_code,
        error=exc.code,
    )
    return JSONResponse(status_code=status_code, content=body)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

settings = get_settings()

app = FastAPI(
    title="ZimConnect",
    description="Profile discovery, mutual-like matching and messaging",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

app.add_exception_handler(ZimConnectError, zimconnect_error_handler)

# -- Middleware (applied in reverse order — last added runs first) ---------- #

app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=30.0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- Health-check endpoints ------------------------------------------------ #


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    """Lightweight liveness probe — always returns healthy if the process is
    running."""
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Deep readiness probe — verifies database, change feed, and GCS connectivity."""
    result: dict = {
        "status": "healthy",
        "database": "connected",
        "change_feed": "connected",
        "gcs": "accessible",
    }

    # Database
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_db_failure", error=str(exc))
        result["database"] = f"error: {exc}"
        result["status"] = "degraded"

    # Change feed
    try:
        if not await get_change_feed().ping():
            raise RuntimeError("change feed did not answer ping")
    except Exception as exc:
        logger.error("health_feed_failure", error=str(exc))
        result["change_feed"] = f"error: {exc}"
        result["status"] = "degraded"

    # GCS
    try:
        from google.cloud import storage as gcs

        gcs_settings = get_settings()
        if not gcs_settings.GCS_BUCKET_NAME:
            result["gcs"] = "not_configured"
        else:
            client = gcs.Client(project=gcs_settings.GCP_PROJECT_ID or None)
            bucket = client.bucket(gcs_settings.GCS_BUCKET_NAME)
            bucket.exists()
    except Exception as exc:
        logger.error("health_gcs_failure", error=str(exc))
        result["gcs"] = f"error: {exc}"
        result["status"] = "degraded"

    return result


# -- API router ------------------------------------------------------------ #

from zimconnect.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
