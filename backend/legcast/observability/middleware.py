from __future__ import annotations

import time
import uuid
from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from legcast.exceptions import (
    ConsistencyError,
    DataQualityError,
    LegcastError,
    VersionGuardError,
)
from legcast.schemas.common import fail

from .metrics import record_latency, REQUEST_COUNTER, REQUEST_LATENCY

logger = structlog.get_logger("http")

# Domain error -> (http status, envelope code)
_ERROR_STATUS: dict[type, tuple[int, str]] = {
    VersionGuardError: (status.HTTP_409_CONFLICT, "version_guard"),
    ConsistencyError: (status.HTTP_409_CONFLICT, "consistency_error"),
    DataQualityError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "data_quality"),
}


async def request_context_middleware(request: Request, call_next):
    """Bind a request id into the structlog context and record latency per path."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    request.state.request_id = request_id
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    start = time.perf_counter()
    status_code = "500"
    try:
        response = await call_next(request)
        status_code = str(response.status_code)
        response.headers["X-Request-Id"] = request_id
        return response
    except Exception:
        logger.exception("request.error")
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        _record(request, duration_ms, status_code)
        logger.info("request.completed", status_code=int(status_code), duration_ms=round(duration_ms, 2))
        structlog.contextvars.clear_contextvars()


def _record(request: Request, duration_ms: float, status_code: str) -> None:
    record_latency(request.url.path, duration_ms)
    REQUEST_COUNTER.labels(
        path=request.url.path,
        method=request.method,
        status=status_code,
    ).inc()
    REQUEST_LATENCY.labels(path=request.url.path, method=request.method).observe(
        duration_ms / 1000
    )


def register_request_middleware(app: FastAPI) -> None:
    app.middleware("http")(request_context_middleware)


def domain_error_handler(request: Request, exc: LegcastError) -> JSONResponse:
    http_status, code = status.HTTP_400_BAD_REQUEST, "domain_error"
    for exc_type, mapped in _ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            http_status, code = mapped
            break
    details: dict[str, Any] | None = None
    if isinstance(exc, VersionGuardError) and exc.active_tag:
        details = {"active_tag": exc.active_tag}
    elif isinstance(exc, DataQualityError):
        details = {"reason": exc.reason}
    logger.warning("request.domain_error", exc_type=type(exc).__name__, error=str(exc))
    return fail(code, str(exc), status_code=http_status, details=details)


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "request.unhandled_exception",
        exc_type=type(exc).__name__,
        error=str(exc),
    )
    payload: dict[str, Any] = {"detail": "Internal Server Error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)
