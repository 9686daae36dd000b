"""
Main Application - FastAPI application setup.
"""

import json
import time
import traceback
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from devclip.api.admin_routes import router as admin_router
from devclip.api.routes import router
from devclip.api.status_routes import router as status_router
from devclip.config import settings
from devclip.db.session import close_engines, create_tables, get_write_session
from devclip.exceptions import DevClipError, ErrorKind
from devclip.models.domain import ErrorLogEntry
from devclip.observability import get_logger, metrics, setup_logging, setup_tracing
from devclip.observability.tracing import instrument_fastapi
from devclip.services.ai import AIInvocationAdapter
from devclip.services.error_logger import ErrorLogger

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

AUTHENTICATE_HEADERS = {"WWW-Authenticate": "Bearer"}

HTTP_STATUS_KINDS: dict[int, ErrorKind] = {
    status.HTTP_400_BAD_REQUEST: ErrorKind.VALIDATION,
    status.HTTP_401_UNAUTHORIZED: ErrorKind.AUTHENTICATION,
    status.HTTP_403_FORBIDDEN: ErrorKind.AUTHORIZATION,
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorKind.VALIDATION,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    if settings.database_auto_create:
        await create_tables()
        logger.info("database_tables_created")

    adapter: AIInvocationAdapter | None = None
    if settings.ai_api_key:
        adapter = AIInvocationAdapter.from_settings(settings)
    else:
        logger.warning("ai_provider_not_configured")
    app.state.ai_adapter = adapter

    yield

    # Shutdown
    logger.info("application_shutting_down")
    if adapter is not None:
        await adapter.client.close()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)

app.state.error_logger = ErrorLogger(get_write_session)


def _request_context(request: Request) -> dict[str, Any]:
    """Query, headers and body of a request, ready for redaction."""
    raw_body: bytes | None = getattr(request.state, "raw_body", None)
    body: Any = None
    if raw_body:
        try:
            body = json.loads(raw_body)
        except ValueError:
            body = raw_body.decode("utf-8", errors="replace")[:1000]
    return {
        "query": dict(request.query_params),
        "headers": dict(request.headers),
        "body": body,
    }


async def _log_server_error(
    request: Request, status_code: int, kind: ErrorKind, exc: BaseException
) -> None:
    metrics.record_error(type(exc).__name__, request.url.path)
    entry = ErrorLogEntry(
        endpoint=request.url.path,
        method=request.method,
        status_code=status_code,
        error_kind=kind.value,
        message=str(exc),
        stack="".join(traceback.format_exception(exc)),
        request_context=_request_context(request),
        account_id=getattr(request.state, "account_id", None),
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    await request.app.state.error_logger.log_error(entry)


@app.exception_handler(DevClipError)
async def devclip_exception_handler(request: Request, exc: DevClipError) -> JSONResponse:
    """Render every domain error as {"error": kind, "message": text, ...details}."""
    if exc.status_code >= 500:
        await _log_server_error(request, exc.status_code, exc.kind, exc)
    else:
        logger.info(
            "request_rejected",
            path=request.url.path,
            error_kind=exc.kind.value,
            status_code=exc.status_code,
            message=exc.message,
        )

    headers = AUTHENTICATE_HEADERS if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind.value, "message": exc.message, **exc.details()},
        headers=headers,
    )


# Add validation error logging handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies, paths or queries become 400 validation errors."""
    errors = exc.errors()

    # Sanitize errors for JSON serialization (ctx may contain non-serializable objects)
    sanitized_errors = []
    for error in errors:
        sanitized = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )

    first = sanitized_errors[0] if sanitized_errors else None
    message = (
        f"{'.'.join(str(part) for part in first['loc'])}: {first['msg']}"
        if first and first.get("loc")
        else "Invalid request"
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": ErrorKind.VALIDATION.value,
            "message": message,
            "details": sanitized_errors,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (unknown route, wrong method) in the same body shape."""
    kind = HTTP_STATUS_KINDS.get(exc.status_code, ErrorKind.INTERNAL)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": kind.value, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected is logged, persisted and reported as a bare 500."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    await _log_server_error(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorKind.INTERNAL, exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": ErrorKind.INTERNAL.value, "message": "Internal server error"},
    )


# Setup tracing
setup_tracing()
instrument_fastapi(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        request_id=request_id,
    )

    # Track in-progress requests
    endpoint = request.url.path
    method = request.method
    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    try:
        response = await call_next(request)
        duration = time.time() - start_time

        metrics.record_http_request(endpoint, method, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
            request_id=request_id,
        )

        return response
    except Exception as e:
        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, 500, duration)

        logger.error(
            "request_failed",
            method=method,
            path=endpoint,
            error=str(e),
            duration_seconds=duration,
            request_id=request_id,
            exc_info=True,
        )
        raise
    finally:
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


# Register routes
app.include_router(router)  # Metered operations and self-service (/v1)
app.include_router(admin_router)  # Admin API routes (/admin)
app.include_router(status_router)  # Health check


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(generate_latest())


def main() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "devclip.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
