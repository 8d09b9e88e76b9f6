"""Identity store model.

Users are owned by the identity provider. This service reads them to resolve
comment authors (display name and avatar) and to look authors up by name.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from src.utils.timestamps import ensure_utc_aware


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    user_id UUID PRIMARY KEY,
    name TEXT,
    avatar_url TEXT,
    role TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP
)
"""

USER_NAME_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_name_idx ON {keyspace}.users (name)
"""

USERS_TABLES_CQL = [
    USER_TABLE_CQL,
    USER_NAME_INDEX_CQL,
]


@dataclass(frozen=True)
class User:
    """Identity record used for author resolution."""

    user_id: UUID
    name: str
    avatar_url: str | None = None
    role: str | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User from Cassandra row."""
        return cls(
            user_id=row.user_id,
            name=row.name,
            avatar_url=row.avatar_url,
            role=row.role,
            is_active=row.is_active if row.is_active is not None else True,
            created_at=ensure_utc_aware(row.created_at),
        )
