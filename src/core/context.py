"""Request context management using contextvars.

Every request gets a request id, and optionally the resolved user id and a
distributed trace id. The values are read by the logging processors so that
every log line of a request carries them without passing them around.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

_CONTEXT_VARS: dict[str, ContextVar[Any]] = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "trace_id": trace_id_var,
}


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def set_trace_id(trace_id: str | None) -> None:
    """Set the trace ID for the current context."""
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """Return the non-empty context variables as a dictionary."""
    return {name: var.get() for name, var in _CONTEXT_VARS.items() if var.get()}


def clear_context() -> None:
    """Reset all context variables.

    Called at the end of each request so values never leak between requests
    served by the same task.
    """
    request_id_var.set("")
    user_id_var.set(None)
    trace_id_var.set(None)

