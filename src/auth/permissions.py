"""Role hierarchy used to compute the authorization flag of an identity.

- ADMIN (level 3)
- MODERATOR (level 2)
- USER (level 1): regular member, may edit and delete own comments
- GUEST (level 0): signed-in but not yet allowed to mutate content
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    GUEST = "guest"
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.GUEST: 0,
    UserRole.USER: 1,
    UserRole.MODERATOR: 2,
    UserRole.ADMIN: 3,
}


def get_role_level(role: UserRole | str | None) -> int:
    """Get the permission level for a role.

    Unknown or missing roles get -1 so they never satisfy any requirement.
    """
    if role is None:
        return -1
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return -1
    return ROLE_HIERARCHY.get(role, -1)


def has_permission(user_role: UserRole | str | None, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.USER)
        True
        >>> has_permission("guest", "user")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)
