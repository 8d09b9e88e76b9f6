"""Comment threading module.

Provides:
- Comment records and read views
- View join (author and reply count resolution)
- Iterative thread assembly
- Ownership-gated mutations

Note: Router is not exported here to avoid circular imports.
Import directly from src.comments.router when needed.
"""

from .models import COMMENTS_TABLES_CQL, Comment, CommentView
from .service import (
    CommentError,
    CommentForbiddenError,
    CommentNotFoundError,
    CommentPersistenceError,
    CommentService,
    CommentValidationError,
)


__all__ = [
    "COMMENTS_TABLES_CQL",
    "Comment",
    "CommentError",
    "CommentForbiddenError",
    "CommentNotFoundError",
    "CommentPersistenceError",
    "CommentService",
    "CommentValidationError",
    "CommentView",
]
