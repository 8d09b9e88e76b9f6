"""FastAPI dependencies resolving the caller's identity from a bearer token."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, Request
from jose import JWTError

from src.auth.permissions import UserRole, has_permission
from src.auth.schemas import ANONYMOUS_IDENTITY, Identity
from src.auth.security import decode_access_token
from src.config.settings import get_settings
from src.core.context import set_user_id


logger = structlog.get_logger(__name__)


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def resolve_identity(token: str | None) -> Identity:
    """Resolve a token into an identity.

    A missing, invalid or expired token resolves to the anonymous identity
    instead of failing, since anonymous callers may still read and create
    comments. Pure function of the token, so calling it repeatedly within a
    request always yields the same identity.
    """
    if not token:
        return ANONYMOUS_IDENTITY

    try:
        payload = decode_access_token(token)
        user_id = UUID(str(payload["sub"]))
    except (JWTError, ValueError) as e:
        logger.info("identity_token_rejected", error_type=type(e).__name__)
        return ANONYMOUS_IDENTITY

    try:
        role: UserRole | None = UserRole(payload.get("role"))
    except ValueError:
        role = None

    required_role = get_settings().auth_required_role
    return Identity(
        user_id=user_id,
        name=payload.get("name"),
        role=role,
        authorized=has_permission(role, required_role),
    )


async def get_current_identity(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Identity:
    """Resolve the current identity and bind its user id to the log context."""
    identity = resolve_identity(token)
    set_user_id(identity.user_id)
    return identity


# Identity of the caller, anonymous when unauthenticated
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
