"""Identity types shared by the auth dependencies and the comment service."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from src.auth.permissions import UserRole


class Identity(BaseModel):
    """Identity resolved for the current request.

    ``user_id`` is None for anonymous callers. ``authorized`` is the role
    flag consulted by the comment mutation guard.
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID | None = None
    name: str | None = None
    role: UserRole | None = None
    authorized: bool = False

    @property
    def is_anonymous(self) -> bool:
        """True when no user could be resolved."""
        return self.user_id is None


ANONYMOUS_IDENTITY = Identity()
