"""Identity store access (users resolved as comment authors)."""

from src.users.models import USERS_TABLES_CQL, User
from src.users.service import UserDirectory


__all__ = ["USERS_TABLES_CQL", "User", "UserDirectory"]
