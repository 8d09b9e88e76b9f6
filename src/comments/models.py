"""Database models for threaded comments.

Cassandra table definitions for:
- comments: one row per comment, keyed by id (point lookup, guarded writes)
- comments_by_post: the comment set of a post in one partition, in
  creation order (thread assembly)

Architecture: adjacency list. ``parent_id`` references another comment of the
same post, NULL for top-level comments. Author identity is resolved at read
time from the users table, never denormalized onto the comment.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from src.utils.timestamps import ensure_utc_aware, utcnow


# Display name used when a comment has no resolvable author
ANONYMOUS_AUTHOR = "Anonymous"

# Wire sentinel meaning "no parent" on create
NO_PARENT_SENTINEL = UUID(int=0)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COMMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    comment_id UUID PRIMARY KEY,
    post_id UUID,
    parent_id UUID,
    owner_id UUID,
    content TEXT,
    anonymous BOOLEAN,
    created_at TIMESTAMP,
    modified_at TIMESTAMP
)
"""

# Secondary indexes: author listings and direct reply lookups
COMMENTS_OWNER_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_owner_idx ON {keyspace}.comments (owner_id)
"""

COMMENTS_ANONYMOUS_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_anonymous_idx ON {keyspace}.comments (anonymous)
"""

COMMENTS_PARENT_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_parent_idx ON {keyspace}.comments (parent_id)
"""

# Whole comment set of a post, oldest first
COMMENTS_BY_POST_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_post (
    post_id UUID,
    created_at TIMESTAMP,
    comment_id UUID,
    parent_id UUID,
    owner_id UUID,
    content TEXT,
    anonymous BOOLEAN,
    modified_at TIMESTAMP,
    PRIMARY KEY ((post_id), created_at, comment_id)
) WITH CLUSTERING ORDER BY (created_at ASC, comment_id ASC)
"""

COMMENTS_TABLES_CQL = [
    COMMENTS_TABLE_CQL,
    COMMENTS_OWNER_INDEX_CQL,
    COMMENTS_ANONYMOUS_INDEX_CQL,
    COMMENTS_PARENT_INDEX_CQL,
    COMMENTS_BY_POST_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Comment:
    """Durable comment record.

    ``owner_id`` is None for comments created without a resolved identity;
    ``anonymous`` records that fact and never changes afterwards.
    """

    comment_id: UUID
    post_id: UUID
    parent_id: UUID | None
    owner_id: UUID | None
    content: str
    anonymous: bool
    created_at: datetime
    modified_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from a row of either comment table."""
        return cls(
            comment_id=row.comment_id,
            post_id=row.post_id,
            parent_id=row.parent_id,
            owner_id=row.owner_id,
            content=row.content,
            anonymous=bool(row.anonymous),
            created_at=ensure_utc_aware(row.created_at),
            modified_at=ensure_utc_aware(row.modified_at),
        )

    @property
    def is_top_level(self) -> bool:
        """True when the comment is attached directly to the post."""
        return self.parent_id is None


@dataclass
class CommentView:
    """Read model: a comment joined with its author and direct reply count.

    Built per request and discarded after serialization. ``children`` is only
    filled by thread assembly.
    """

    comment_id: UUID
    post_id: UUID
    parent_id: UUID | None
    owner_id: UUID | None
    content: str
    anonymous: bool
    created_at: datetime
    modified_at: datetime | None
    author: str
    avatar: str | None
    reply_count: int
    children: list["CommentView"] = field(default_factory=list)

    def detached(self) -> "CommentView":
        """Copy of this view with an empty ``children`` list of its own."""
        return replace(self, children=[])


# ==============================================================================
# Factory Functions
# ==============================================================================


def normalize_parent_id(parent_id: UUID | None) -> UUID | None:
    """Map the "no parent" sentinel to None."""
    if parent_id is None or parent_id == NO_PARENT_SENTINEL:
        return None
    return parent_id


def create_comment(
    post_id: UUID,
    content: str,
    owner_id: UUID | None = None,
    parent_id: UUID | None = None,
) -> Comment:
    """Create a new comment; anonymous iff no owner was resolved."""
    return Comment(
        comment_id=uuid4(),
        post_id=post_id,
        parent_id=normalize_parent_id(parent_id),
        owner_id=owner_id,
        content=content,
        anonymous=owner_id is None,
        created_at=utcnow(),
        modified_at=None,
    )
