"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps domain and storage
exceptions to HTTP responses; no handler ever returns a traceback.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cloudvault.core.config import get_settings
from cloudvault.domain.exceptions import CloudVaultException

logger = logging.getLogger(__name__)

# Map error_code to HTTP status; unlisted codes fall back to 400
_ERROR_CODE_STATUS: dict[str, int] = {
    "FILE_TOO_LARGE": 413,
    "STORAGE_QUOTA_EXCEEDED": 413,
    "RESOURCE_NOT_FOUND": 404,
    "STORAGE_NOT_FOUND": 404,
    "VALIDATION_ERROR": 400,
    "BACKEND_MISMATCH": 400,
    "INVALID_UPLOAD_TRANSITION": 409,
    "STORAGE_PERMISSION_ERROR": 403,
    "UPLOAD_TIMEOUT": 408,
    "BACKEND_UNAVAILABLE": 503,
    "SERVICE_UNAVAILABLE": 503,
}


def _cloudvault_exception_handler(
    request: Request, exc: CloudVaultException
) -> JSONResponse:
    """Return JSON from CloudVaultException.to_dict() with appropriate status code."""
    status = _ERROR_CODE_STATUS.get(exc.error_code, 400)
    if status >= 500:
        logger.warning(
            "%s on %s %s: %s",
            exc.error_code,
            request.method,
            request.url.path,
            getattr(exc, "reason", "") or exc.message,
        )
    return JSONResponse(status_code=status, content=exc.to_dict())


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": exc.errors(),
        },
    )


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Return JSON for Starlette HTTP exceptions (status + detail)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP_ERROR", "message": exc.detail},
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception: %s", exc)
    settings = get_settings()
    detail: Any = str(exc) if settings.debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Call once after creating the app. Handlers: CloudVaultException (and
    subclasses), RequestValidationError, StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(CloudVaultException, _cloudvault_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
