"""Identity resolution: bearer token verification and role checks."""

from src.auth.permissions import UserRole, has_permission
from src.auth.schemas import ANONYMOUS_IDENTITY, Identity


__all__ = ["ANONYMOUS_IDENTITY", "Identity", "UserRole", "has_permission"]
