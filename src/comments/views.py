"""Comment view join.

Joins raw comments with their authors (outer join on ``owner_id``) and with
their direct replies (outer join on ``parent_id``), yielding CommentView read
models.
"""

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from uuid import UUID

from src.users.models import User

from .models import ANONYMOUS_AUTHOR, Comment, CommentView


def count_replies(comments: Iterable[Comment]) -> Counter[UUID]:
    """Number of direct replies per parent id."""
    return Counter(c.parent_id for c in comments if c.parent_id is not None)


def resolve_author(comment: Comment, users: Mapping[UUID, User]) -> tuple[str, str | None]:
    """Display name and avatar of a comment's author.

    Anonymous comments, comments without owner and comments whose owner no
    longer exists all resolve to ``("Anonymous", None)``.
    """
    if comment.anonymous or comment.owner_id is None:
        return ANONYMOUS_AUTHOR, None
    user = users.get(comment.owner_id)
    if user is None:
        return ANONYMOUS_AUTHOR, None
    return user.name, user.avatar_url


def to_view(comment: Comment, users: Mapping[UUID, User], reply_count: int) -> CommentView:
    """Build the view of a single comment."""
    author, avatar = resolve_author(comment, users)
    return CommentView(
        comment_id=comment.comment_id,
        post_id=comment.post_id,
        parent_id=comment.parent_id,
        owner_id=comment.owner_id,
        content=comment.content,
        anonymous=comment.anonymous,
        created_at=comment.created_at,
        modified_at=comment.modified_at,
        author=author,
        avatar=avatar,
        reply_count=reply_count,
    )


def build_views(
    comments: Iterable[Comment],
    users: Mapping[UUID, User],
    post_id: UUID | None = None,
) -> Iterator[CommentView]:
    """Lazily yield a view for each comment.

    Reply counts are taken over the whole ``comments`` input, before the
    optional ``post_id`` filter is applied, so they always reflect every
    known direct reply. Input order is preserved; no ordering is imposed.

    Nothing is evaluated until the iterator is consumed.
    """
    comments = list(comments)
    replies = count_replies(comments)
    for comment in comments:
        if post_id is not None and comment.post_id != post_id:
            continue
        yield to_view(comment, users, replies[comment.comment_id])
