"""Global exception handlers.

Every error leaves the API in the same envelope::

    {"error": true, "message": ..., "status_code": ..., "request_id": ...}

plus ``details`` for field-level failures. Server errors never expose their
cause; it is logged instead.
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.core.context import get_request_id


logger = structlog.get_logger(__name__)

GENERIC_SERVER_ERROR = "Internal server error"


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id() or None


def error_response(
    request: Request,
    status_code: int,
    message: str,
    details: list[dict[str, Any]] | None = None,
) -> ORJSONResponse:
    """Build the error envelope."""
    content: dict[str, Any] = {
        "error": True,
        "message": message,
        "status_code": status_code,
        "request_id": _request_id(request),
    }
    if details is not None:
        content["details"] = details
    return ORJSONResponse(status_code=status_code, content=content)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> ORJSONResponse:
    """HTTP errors raised by routes and dependencies."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=str(exc.detail),
        path=request.url.path,
        method=request.method,
    )

    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return error_response(request, exc.status_code, GENERIC_SERVER_ERROR)
    # Field-level errors from the content validator
    if isinstance(exc.detail, list):
        return error_response(
            request, exc.status_code, "Validation failed", details=exc.detail
        )
    return error_response(request, exc.status_code, str(exc.detail))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """Malformed path, query or body parameters."""
    logger.warning(
        "request_validation_error",
        errors=exc.errors(),
        path=request.url.path,
        method=request.method,
    )
    details = [
        {
            "field": ".".join(str(loc) for loc in err.get("loc", [])),
            "error": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        details=details,
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> ORJSONResponse:
    """Anything that escaped the routes."""
    logger.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on ``app``."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
