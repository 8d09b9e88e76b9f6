"""Comment service layer.

Business logic for:
- Thread reads (whole post, single subtree, direct replies)
- Author listings with pagination
- Guarded create, update and delete
- Optional Redis caching of post threads
"""

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError
from redis.exceptions import RedisError

from src.auth.schemas import Identity
from src.core.redis import thread_cache_key, thread_version_key
from src.utils.timestamps import utcnow

from .guard import MutationDecision, decide_mutation
from .models import ANONYMOUS_AUTHOR, Comment, CommentView, create_comment
from .repository import STORE_ERRORS, CommentRepository
from .tree import assemble_forest, index_by_parent, thread
from .views import build_views, to_view


if TYPE_CHECKING:
    from redis.asyncio import Redis

    from src.users.service import UserDirectory


logger = structlog.get_logger(__name__)

# Threads are cached as the flat view pool and re-assembled on read
_pool_adapter = TypeAdapter(list[CommentView])


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CommentError(Exception):
    """Base comment error."""

    def __init__(self, message: str, code: str = "comment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CommentNotFoundError(CommentError):
    """Comment not found."""

    def __init__(self, message: str = "The comment does not exist"):
        super().__init__(message, "comment_not_found")


class CommentForbiddenError(CommentError):
    """Caller does not own the comment or is not authorized."""

    def __init__(self, message: str = "You can only change your own comments"):
        super().__init__(message, "forbidden")


class CommentValidationError(CommentError):
    """Input rejected by the content validator."""

    def __init__(self, errors: list[dict[str, str]], message: str = "Validation failed"):
        self.errors = errors
        super().__init__(message, "validation_failed")


class CommentPersistenceError(CommentError):
    """The store did not apply a write, or failed unexpectedly."""

    def __init__(self, message: str = "Something went wrong"):
        super().__init__(message, "persistence_error")


@contextmanager
def store_call(operation: str, **context: object) -> Iterator[None]:
    """Convert driver failures into CommentPersistenceError.

    The driver error is logged with the operation and its target; only a
    generic message reaches the caller.
    """
    try:
        yield
    except STORE_ERRORS as e:
        logger.exception(
            "comment_store_error",
            operation=operation,
            error_type=type(e).__name__,
            **{k: str(v) for k, v in context.items()},
        )
        raise CommentPersistenceError from e


# ==============================================================================
# Comment Service
# ==============================================================================


class CommentService:
    """Service for threaded comments."""

    def __init__(
        self,
        repository: CommentRepository,
        users: "UserDirectory",
        redis: "Redis | None" = None,
        cache_ttl_seconds: int = 300,
    ):
        """Initialize with the comment store, identity store and optional Redis."""
        self.repository = repository
        self.users = users
        self.redis = redis
        self.cache_ttl_seconds = cache_ttl_seconds

    # ==========================================================================
    # View loading
    # ==========================================================================

    async def _load_post_views(self, post_id: UUID) -> list[CommentView]:
        """Views of every comment of a post, in creation order."""
        with store_call("load_post_views", post_id=post_id):
            comments = await self.repository.list_by_post(post_id)
            users = await self.users.get_users(c.owner_id for c in comments)
        return list(build_views(comments, users))

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_thread(self, post_id: UUID) -> list[CommentView]:
        """Top-level comments of a post, each with its full reply tree.

        Orphaned subtrees (whose parent was deleted) follow the top-level
        comments. An empty list is returned when the post has no comments.
        """
        version, cached = await self._get_cached_pool(post_id)
        if cached is not None:
            return assemble_forest(cached)

        pool = await self._load_post_views(post_id)
        forest = assemble_forest(pool)

        await self._cache_pool(post_id, version, pool)
        logger.debug("thread_assembled", post_id=str(post_id), comments=len(pool))
        return forest

    async def get_comment_tree(self, comment_id: UUID) -> CommentView | None:
        """A comment with its full reply tree, None if it does not exist.

        The comment does not have to be top-level. Only comments of the same
        post are considered for threading.
        """
        with store_call("get_comment", comment_id=comment_id):
            comment = await self.repository.get(comment_id)
        if comment is None:
            return None

        pool = await self._load_post_views(comment.post_id)
        index = index_by_parent(pool)
        root = next((v for v in pool if v.comment_id == comment_id), None)
        if root is None:
            # Written to the by-id table but not (yet) visible in the post
            # partition; the join key still works.
            users = await self._resolve_users([comment])
            root = to_view(comment, users, len(index.get(comment_id, ())))
        return thread(root, pool, index)

    async def get_replies(self, comment_id: UUID) -> list[CommentView]:
        """Direct replies to a comment, not threaded further.

        Each reply count only includes replies on the same post, as in
        thread views.

        Raises:
            CommentNotFoundError: If the comment does not exist
        """
        with store_call("get_replies", comment_id=comment_id):
            if not await self.repository.exists(comment_id):
                raise CommentNotFoundError
            replies = await self.repository.list_by_parent(comment_id)
            grandchildren = await asyncio.gather(
                *(self.repository.list_by_parent(r.comment_id) for r in replies)
            )
            users = await self.users.get_users(r.owner_id for r in replies)
        return [
            to_view(reply, users, sum(c.post_id == reply.post_id for c in children))
            for reply, children in zip(replies, grandchildren, strict=True)
        ]

    async def list_by_author(
        self, author_name: str, page: int = 1, page_size: int = 20
    ) -> list[CommentView]:
        """Top-level comments by an author, newest first, one page at a time.

        Only the top-level set is paginated. Each returned comment carries its
        complete reply tree, threaded over the whole comment set of its post.

        Raises:
            CommentValidationError: If page < 1 or page_size < 1
        """
        errors = []
        if page < 1:
            errors.append({"field": "page", "error": "Page must be at least 1"})
        if page_size < 1:
            errors.append({"field": "page_size", "error": "Page size must be positive"})
        if errors:
            raise CommentValidationError(errors)

        with store_call("list_by_author", author=author_name):
            candidates = await self._author_candidates(author_name)
            users = await self._resolve_users(candidates)

        matches = [
            view
            for view in build_views(candidates, users)
            if view.parent_id is None and view.author == author_name
        ]
        matches.sort(key=lambda v: v.created_at, reverse=True)
        skip = (page - 1) * page_size
        window = matches[skip : skip + page_size]

        pools: dict[UUID, list[CommentView]] = {}
        results = []
        for view in window:
            if view.post_id not in pools:
                pools[view.post_id] = await self._load_post_views(view.post_id)
            pool = pools[view.post_id]
            index = index_by_parent(pool)
            root = next((v for v in pool if v.comment_id == view.comment_id), None)
            if root is None:
                root = view.detached()
                root.reply_count = len(index.get(view.comment_id, ()))
            results.append(thread(root, pool, index))

        logger.debug(
            "author_comments_listed",
            author=author_name,
            page=page,
            page_size=page_size,
            matches=len(matches),
            returned=len(results),
        )
        return results

    async def _author_candidates(self, author_name: str) -> list[Comment]:
        """Comments that may resolve to ``author_name``, deduplicated."""
        owners = await self.users.find_by_name(author_name)
        batches = await asyncio.gather(
            *(self.repository.list_by_owner(user.user_id) for user in owners)
        )
        candidates: dict[UUID, Comment] = {}
        for batch in batches:
            for comment in batch:
                candidates[comment.comment_id] = comment
        if author_name == ANONYMOUS_AUTHOR:
            for comment in await self.repository.list_anonymous():
                candidates[comment.comment_id] = comment
        return list(candidates.values())

    async def _resolve_users(self, comments: list[Comment]):
        return await self.users.get_users(c.owner_id for c in comments)

    async def comment_exists(self, comment_id: UUID) -> bool:
        """Check whether a comment exists."""
        with store_call("comment_exists", comment_id=comment_id):
            return await self.repository.exists(comment_id)

    async def get_comment(self, comment_id: UUID) -> Comment | None:
        """Raw comment record."""
        with store_call("get_comment", comment_id=comment_id):
            return await self.repository.get(comment_id)

    async def get_post_comments(self, post_id: UUID) -> list[Comment]:
        """Raw comments of a post, oldest first, without threading."""
        with store_call("get_post_comments", post_id=post_id):
            return await self.repository.list_by_post(post_id)

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def create_comment(
        self,
        post_id: UUID,
        content: str,
        identity: Identity,
        parent_id: UUID | None = None,
    ) -> UUID:
        """Create a comment and return its id.

        Anyone may comment. Without a resolved identity the comment is stored
        as anonymous. The parent is not checked to belong to the same post.

        Raises:
            CommentPersistenceError: If the store did not apply the write
        """
        comment = create_comment(
            post_id=post_id,
            content=content,
            owner_id=identity.user_id,
            parent_id=parent_id,
        )

        with store_call("create_comment", post_id=post_id, comment_id=comment.comment_id):
            applied = await self.repository.insert(comment)
        if not applied:
            logger.error(
                "comment_create_not_applied",
                post_id=str(post_id),
                comment_id=str(comment.comment_id),
            )
            raise CommentPersistenceError

        await self._invalidate_thread(post_id)
        logger.info(
            "comment_created",
            comment_id=str(comment.comment_id),
            post_id=str(post_id),
            parent_id=str(comment.parent_id) if comment.parent_id else None,
            anonymous=comment.anonymous,
        )
        return comment.comment_id

    async def update_comment(
        self, comment_id: UUID, content: str, identity: Identity
    ) -> bool:
        """Replace the content of a comment owned by the caller.

        Returns False if the comment disappeared between the permission check
        and the write.

        Raises:
            CommentNotFoundError: If the comment does not exist
            CommentForbiddenError: If the caller is not the authorized owner
        """
        comment = await self._get_mutable(comment_id, identity, "update")

        with store_call("update_comment", comment_id=comment_id):
            applied = await self.repository.update_content(comment, content, utcnow())
        if not applied:
            logger.warning("comment_update_not_applied", comment_id=str(comment_id))
            return False

        await self._invalidate_thread(comment.post_id)
        logger.info("comment_updated", comment_id=str(comment_id))
        return True

    async def delete_comment(self, comment_id: UUID, identity: Identity) -> bool:
        """Delete a comment owned by the caller.

        Replies are not deleted; they stay as orphans pointing at the removed
        id. Returns False if the comment was already gone at write time.

        Raises:
            CommentNotFoundError: If the comment does not exist
            CommentForbiddenError: If the caller is not the authorized owner
        """
        comment = await self._get_mutable(comment_id, identity, "delete")

        with store_call("delete_comment", comment_id=comment_id):
            applied = await self.repository.delete(comment)
        if not applied:
            logger.warning("comment_delete_not_applied", comment_id=str(comment_id))
            return False

        await self._invalidate_thread(comment.post_id)
        logger.info("comment_deleted", comment_id=str(comment_id))
        return True

    async def _get_mutable(
        self, comment_id: UUID, identity: Identity, operation: str
    ) -> Comment:
        """Load a comment and run it through the mutation gate."""
        with store_call(f"{operation}_comment", comment_id=comment_id):
            comment = await self.repository.get(comment_id)

        decision = decide_mutation(comment, identity)
        if decision is MutationDecision.NOT_FOUND:
            raise CommentNotFoundError
        if decision is MutationDecision.FORBIDDEN:
            logger.warning(
                f"comment_{operation}_forbidden",
                comment_id=str(comment_id),
                authorized=identity.authorized,
            )
            raise CommentForbiddenError
        return comment

    # ==========================================================================
    # Thread cache (Redis)
    # ==========================================================================

    async def _get_cached_pool(
        self, post_id: UUID
    ) -> tuple[str | None, list[CommentView] | None]:
        """Current cache version of a post and the pool cached under it.

        The version is None when the cache is off or unreadable; nothing is
        written back in that case.
        """
        if not self.redis:
            return None, None
        try:
            version = await self.redis.get(thread_version_key(post_id)) or "0"
            cached = await self.redis.get(thread_cache_key(post_id, version))
        except RedisError as e:
            logger.warning(
                "thread_cache_read_failed", post_id=str(post_id), error=str(e)
            )
            return None, None
        if not cached:
            return version, None
        try:
            return version, _pool_adapter.validate_json(cached)
        except ValidationError as e:
            logger.warning(
                "thread_cache_corrupt", post_id=str(post_id), error=str(e)
            )
            return version, None

    async def _cache_pool(
        self, post_id: UUID, version: str | None, pool: list[CommentView]
    ) -> None:
        """Store a post's pool under the version read before loading it.

        A write that lands meanwhile bumps the version, so a pool loaded
        before it is stored under a key no reader asks for anymore.
        """
        if not self.redis or version is None:
            return
        try:
            await self.redis.setex(
                thread_cache_key(post_id, version),
                self.cache_ttl_seconds,
                _pool_adapter.dump_json(pool),
            )
        except (RedisError, PydanticSerializationError) as e:
            logger.warning(
                "thread_cache_write_failed", post_id=str(post_id), error=str(e)
            )

    async def _invalidate_thread(self, post_id: UUID) -> None:
        if not self.redis:
            return
        try:
            await self.redis.incr(thread_version_key(post_id))
        except RedisError as e:
            logger.warning(
                "thread_cache_invalidate_failed", post_id=str(post_id), error=str(e)
            )
