from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    status_code = 500
    default_code: str | None = None

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DiscoveryError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(DiscoveryError):
    status_code = 404
    default_code = "NOT_FOUND"


class UpstreamUnavailable(DiscoveryError):
    """Place lookup is disabled, unconfigured or failing. Search paths degrade instead of raising."""

    status_code = 503
    default_code = "UPSTREAM_UNAVAILABLE"


class TransientStoreError(DiscoveryError):
    """Store or pool timed out; the caller may retry the whole request."""

    status_code = 503
    default_code = "STORE_UNAVAILABLE"


def error_body(message: str, code: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if code:
        body["code"] = code
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DiscoveryError)
    async def discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("request failed path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
        headers = {"Retry-After": "1"} if isinstance(exc, TransientStoreError) else None
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part not in {"query", "body"})
        message = f"Invalid parameter {location}: {first.get('msg', 'invalid value')}" if location else "Invalid request"
        return JSONResponse(status_code=400, content=error_body(message, "VALIDATION_ERROR"))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=exc.headers)
