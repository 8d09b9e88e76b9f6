"""Cassandra-backed comment store.

Every write goes to ``comments`` first as a lightweight transaction, whose
``[applied]`` flag tells whether the row was actually written, and is then
mirrored to ``comments_by_post``. A write that did not apply is never
mirrored. Mirror updates are conditional too, so an update racing a delete
cannot bring the deleted row back in the post partition.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra import DriverException
from cassandra.cluster import NoHostAvailable

from .models import Comment


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

STORE_ERRORS = (DriverException, NoHostAvailable)


class CommentRepository:
    """Point queries, set queries, insert, update-in-place and delete."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        # Reads
        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE comment_id = ?
        """)

        self._get_comments_by_post = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_post
            WHERE post_id = ?
        """)

        self._get_comments_by_parent = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE parent_id = ?
        """)

        self._get_comments_by_owner = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE owner_id = ?
        """)

        self._get_anonymous_comments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE anonymous = true
        """)

        # Writes
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments
            (comment_id, post_id, parent_id, owner_id, content, anonymous,
             created_at, modified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._insert_comment_by_post = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments_by_post
            (post_id, created_at, comment_id, parent_id, owner_id, content,
             anonymous, modified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._update_comment = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET content = ?, modified_at = ?
            WHERE comment_id = ?
            IF EXISTS
        """)

        self._update_comment_by_post = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_post
            SET content = ?, modified_at = ?
            WHERE post_id = ? AND created_at = ? AND comment_id = ?
            IF EXISTS
        """)

        self._delete_comment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments
            WHERE comment_id = ?
            IF EXISTS
        """)

        self._delete_comment_by_post = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments_by_post
            WHERE post_id = ? AND created_at = ? AND comment_id = ?
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, comment_id: UUID) -> Comment | None:
        """Find a comment by id."""
        result = await self.session.aexecute(self._get_comment, [comment_id])
        row = result.one()
        return Comment.from_row(row) if row else None

    async def exists(self, comment_id: UUID) -> bool:
        """Check whether a comment exists."""
        return await self.get(comment_id) is not None

    async def list_by_post(self, post_id: UUID) -> list[Comment]:
        """All comments of a post, oldest first."""
        rows = await self.session.aexecute(self._get_comments_by_post, [post_id])
        return [Comment.from_row(row) for row in rows]

    async def list_by_parent(self, parent_id: UUID) -> list[Comment]:
        """Direct replies to a comment, oldest first."""
        rows = await self.session.aexecute(self._get_comments_by_parent, [parent_id])
        return _by_creation([Comment.from_row(row) for row in rows])

    async def list_by_owner(self, owner_id: UUID) -> list[Comment]:
        """All comments owned by a user, oldest first."""
        rows = await self.session.aexecute(self._get_comments_by_owner, [owner_id])
        return _by_creation([Comment.from_row(row) for row in rows])

    async def list_anonymous(self) -> list[Comment]:
        """All comments created without an identity, oldest first."""
        rows = await self.session.aexecute(self._get_anonymous_comments)
        return _by_creation([Comment.from_row(row) for row in rows])

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def insert(self, comment: Comment) -> bool:
        """Insert a new comment. Returns False if the write did not apply."""
        result = await self.session.aexecute(
            self._insert_comment,
            [
                comment.comment_id,
                comment.post_id,
                comment.parent_id,
                comment.owner_id,
                comment.content,
                comment.anonymous,
                comment.created_at,
                comment.modified_at,
            ],
        )
        if not result.was_applied:
            return False

        try:
            await self.session.aexecute(
                self._insert_comment_by_post,
                [
                    comment.post_id,
                    comment.created_at,
                    comment.comment_id,
                    comment.parent_id,
                    comment.owner_id,
                    comment.content,
                    comment.anonymous,
                    comment.modified_at,
                ],
            )
        except STORE_ERRORS:
            await self._undo_insert(comment)
            raise
        return True

    async def _undo_insert(self, comment: Comment) -> None:
        """Remove the id-table row of an insert whose mirror write failed."""
        try:
            await self.session.aexecute(self._delete_comment, [comment.comment_id])
        except STORE_ERRORS as e:
            logger.error(
                "comment_insert_partial_write",
                comment_id=str(comment.comment_id),
                post_id=str(comment.post_id),
                error=str(e),
            )
        else:
            logger.warning(
                "comment_insert_rolled_back",
                comment_id=str(comment.comment_id),
                post_id=str(comment.post_id),
            )

    async def update_content(
        self, comment: Comment, content: str, modified_at: datetime
    ) -> bool:
        """Replace the content of an existing comment.

        Returns False when the comment no longer exists. The post-table row
        is only rewritten while it still exists, so a delete landing between
        the two writes wins.
        """
        result = await self.session.aexecute(
            self._update_comment,
            [content, modified_at, comment.comment_id],
        )
        if not result.was_applied:
            return False

        await self.session.aexecute(
            self._update_comment_by_post,
            [
                content,
                modified_at,
                comment.post_id,
                comment.created_at,
                comment.comment_id,
            ],
        )
        return True

    async def delete(self, comment: Comment) -> bool:
        """Delete exactly one comment; replies are left in place.

        Returns False when the comment was already gone.
        """
        result = await self.session.aexecute(
            self._delete_comment, [comment.comment_id]
        )
        if not result.was_applied:
            return False

        await self.session.aexecute(
            self._delete_comment_by_post,
            [comment.post_id, comment.created_at, comment.comment_id],
        )
        return True


def _by_creation(comments: list[Comment]) -> list[Comment]:
    return sorted(comments, key=lambda c: (c.created_at, str(c.comment_id)))
