"""Read access to the identity store."""

from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.users.models import User


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


class UserDirectory:
    """Point and batch lookups of users by id, and lookup by display name."""

    # Upper bound of keys bound into a single IN query
    IN_QUERY_CHUNK = 100

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_user = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE user_id = ?"
        )
        self._get_users = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE user_id IN ?"
        )
        self._get_users_by_name = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE name = ?"
        )

    async def get_user(self, user_id: UUID) -> User | None:
        """Find a user by id, None when not found."""
        result = await self.session.aexecute(self._get_user, [user_id])
        row = result.one()
        return User.from_row(row) if row else None

    async def get_users(self, user_ids: Iterable[UUID | None]) -> dict[UUID, User]:
        """Resolve many user ids at once.

        None entries and unknown ids are skipped, so the result only holds
        the users that exist.
        """
        unique_ids = list(dict.fromkeys(uid for uid in user_ids if uid is not None))
        users: dict[UUID, User] = {}
        for start in range(0, len(unique_ids), self.IN_QUERY_CHUNK):
            chunk = unique_ids[start : start + self.IN_QUERY_CHUNK]
            rows = await self.session.aexecute(self._get_users, [chunk])
            for row in rows:
                user = User.from_row(row)
                users[user.user_id] = user
        return users

    async def find_by_name(self, name: str) -> list[User]:
        """Find users whose display name matches exactly."""
        rows = await self.session.aexecute(self._get_users_by_name, [name])
        return [User.from_row(row) for row in rows]
