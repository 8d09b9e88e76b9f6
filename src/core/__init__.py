"""Cross-cutting infrastructure: request context, logging, errors, storage."""

from src.core.context import get_request_id
from src.core.errors import register_exception_handlers
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContextMiddleware",
    "configure_structlog",
    "get_logger",
    "get_request_id",
    "register_exception_handlers",
]
