"""JSON error envelope shared by the gate and the HTTP routes.

Every error leaves the service as::

    {"error": {"code": ..., "message": ...}, "request_id": ..., "detail": ...}

with the request id echoed in ``X-Request-ID``.
"""

from __future__ import annotations

import logging
import os
import uuid
from http import HTTPStatus
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trust_guard.shared.errors import TrustGuardError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_CODES = {
    400: "invalid_request",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_error",
    500: "internal_error",
    503: "service_unavailable",
}


def _describe(status_code: int) -> tuple[str, str]:
    """Return ``(code, default message)`` for a status."""
    code = ERROR_CODES.get(status_code, f"http_{status_code}")
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        phrase = "Request failed"
    return code, phrase


def _details_enabled() -> bool:
    # Off unless explicitly enabled; details can leak internals.
    return os.getenv("ERROR_INCLUDE_DETAILS", "false").lower() == "true"


def error_response(
    request: Request,
    status_code: int,
    message: Optional[str] = None,
    *,
    details: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    """Build the envelope for ``status_code``; usable outside exception handlers."""
    code, phrase = _describe(status_code)
    message = message or phrase
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    response = JSONResponse(
        {"error": error, "request_id": request_id, "detail": message},
        status_code=status_code,
    )
    if headers:
        response.headers.update(headers)
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


def register_error_handlers(app: FastAPI) -> None:
    """Install envelope-producing handlers on ``app``."""

    @app.exception_handler(StarletteHTTPException)
    async def _on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, str):
            return error_response(request, exc.status_code, exc.detail, headers=exc.headers)
        details = exc.detail if _details_enabled() else None
        return error_response(request, exc.status_code, details=details, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = jsonable_encoder(exc.errors())
        return error_response(request, 422, "Validation error", details=details)

    @app.exception_handler(TrustGuardError)
    async def _on_trust_guard_error(request: Request, exc: TrustGuardError) -> JSONResponse:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        details = str(exc) if _details_enabled() else None
        return error_response(request, 503, "Trust evaluation unavailable", details=details)

    @app.exception_handler(Exception)
    async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(request, 500, "Internal server error")
