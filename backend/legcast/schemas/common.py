"""Uniform response envelope: {ok, data, error, meta}."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import status as http
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

API_VERSION = "1.0.0"


class ApiError(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ResponseMeta(BaseModel):
    # version tag the response was computed against, when one applies
    version_tag: Optional[str] = None
    route_key: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    generated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    version: str = API_VERSION


class Envelope(BaseModel):
    ok: bool
    data: Any | None = None
    error: ApiError | None = None
    meta: ResponseMeta


def _respond(envelope: Envelope, status_code: int) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(envelope.model_dump()), status_code=status_code)


def ok(data: Any = None, meta: Optional[ResponseMeta] = None, status_code: int = http.HTTP_200_OK) -> JSONResponse:
    return _respond(Envelope(ok=True, data=data, meta=meta or meta_now()), status_code)


def fail(
    code: str,
    message: str,
    status_code: int = http.HTTP_400_BAD_REQUEST,
    details: Optional[Dict[str, Any]] = None,
    meta: Optional[ResponseMeta] = None,
) -> JSONResponse:
    error = ApiError(code=code, message=message, details=details)
    return _respond(Envelope(ok=False, error=error, meta=meta or meta_now()), status_code)


def meta_now(*, version_tag: Optional[str] = None, route_key: Optional[str] = None, **params) -> ResponseMeta:
    """Build response meta; None-valued params are dropped."""
    clean = {k: v for k, v in params.items() if v is not None}
    return ResponseMeta(version_tag=version_tag, route_key=route_key, params=clean or None)
