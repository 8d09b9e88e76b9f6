"""Tests for CommentService.

Covers:
- Thread reads (get_thread, get_comment_tree, get_replies)
- Author listing with pagination
- Guarded create, update and delete
- Store error conversion
- Thread cache
"""

import sys
from collections.abc import Callable
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from cassandra import OperationTimedOut
from redis.exceptions import ConnectionError as RedisConnectionError

from src.auth.schemas import ANONYMOUS_IDENTITY
from src.comments.models import ANONYMOUS_AUTHOR, NO_PARENT_SENTINEL, Comment, CommentView
from src.comments.service import (
    CommentForbiddenError,
    CommentNotFoundError,
    CommentPersistenceError,
    CommentService,
    CommentValidationError,
    _pool_adapter,
)
from src.core.redis import thread_cache_key, thread_version_key
from src.users.models import User
from tests.comments.factories import (
    InMemoryCommentRepository,
    InMemoryRedis,
    InMemoryUserDirectory,
    identity_for,
)


def _walk(views: list[CommentView]) -> list[UUID]:
    """All ids in a forest, depth first."""
    seen = []
    stack = list(reversed(views))
    while stack:
        node = stack.pop()
        seen.append(node.comment_id)
        stack.extend(reversed(node.children))
    return seen


@pytest_asyncio.fixture
async def abc_thread(
    service: CommentService, post_id: UUID, alice: User, bob: User
) -> tuple[UUID, UUID, UUID]:
    """A by alice, B by bob replying to A, C anonymous replying to B."""
    a = await service.create_comment(post_id, "A", identity_for(alice))
    b = await service.create_comment(post_id, "B", identity_for(bob), parent_id=a)
    c = await service.create_comment(post_id, "C", ANONYMOUS_IDENTITY, parent_id=b)
    return a, b, c


class TestGetThread:
    """Tests for get_thread method."""

    @pytest.mark.asyncio
    async def test_nested_thread(
        self,
        service: CommentService,
        post_id: UUID,
        alice: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """A -> B -> C comes back as one nested tree with authors resolved."""
        a, b, c = abc_thread

        forest = await service.get_thread(post_id)

        assert len(forest) == 1
        root = forest[0]
        assert root.comment_id == a
        assert root.author == "alice"
        assert root.avatar == alice.avatar_url
        assert root.reply_count == 1

        (reply,) = root.children
        assert reply.comment_id == b
        assert reply.author == "bob"
        assert reply.reply_count == 1

        (leaf,) = reply.children
        assert leaf.comment_id == c
        assert leaf.author == ANONYMOUS_AUTHOR
        assert leaf.avatar is None
        assert leaf.reply_count == 0
        assert leaf.children == []

    @pytest.mark.asyncio
    async def test_empty_post(self, service: CommentService) -> None:
        """A post without comments yields an empty list."""
        assert await service.get_thread(uuid4()) == []

    @pytest.mark.asyncio
    async def test_other_posts_excluded(
        self,
        service: CommentService,
        post_id: UUID,
        alice: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """Only comments of the requested post are returned."""
        await service.create_comment(uuid4(), "elsewhere", identity_for(alice))

        forest = await service.get_thread(post_id)

        assert len(_walk(forest)) == 3

    @pytest.mark.asyncio
    async def test_idempotent(
        self, service: CommentService, post_id: UUID, abc_thread: tuple[UUID, UUID, UUID]
    ) -> None:
        """Reading twice without writes gives equal results."""
        assert await service.get_thread(post_id) == await service.get_thread(post_id)

    @pytest.mark.asyncio
    async def test_deleted_owner_reads_as_anonymous(
        self,
        service: CommentService,
        users: InMemoryUserDirectory,
        post_id: UUID,
        alice: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """Comments whose owner was removed show the anonymous author."""
        del users.users[alice.user_id]

        forest = await service.get_thread(post_id)

        assert forest[0].author == ANONYMOUS_AUTHOR
        assert forest[0].avatar is None

    @pytest.mark.asyncio
    async def test_deep_thread(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        post_id: UUID,
        comment_factory: Callable[..., Comment],
    ) -> None:
        """Threads deeper than the recursion limit are assembled fully."""
        chain = [comment_factory()]
        for i in range(sys.getrecursionlimit() + 100):
            chain.append(comment_factory(parent=chain[-1], minutes=i + 1))
        repository.seed(*chain)

        forest = await service.get_thread(post_id)

        assert _walk(forest) == [c.comment_id for c in chain]


class TestGetCommentTree:
    """Tests for get_comment_tree method."""

    @pytest.mark.asyncio
    async def test_subtree_of_reply(
        self, service: CommentService, abc_thread: tuple[UUID, UUID, UUID]
    ) -> None:
        """Any comment can be the root, not only top-level ones."""
        _, b, c = abc_thread

        tree = await service.get_comment_tree(b)

        assert tree is not None
        assert tree.comment_id == b
        assert tree.reply_count == 1
        assert [child.comment_id for child in tree.children] == [c]

    @pytest.mark.asyncio
    async def test_missing(self, service: CommentService) -> None:
        """A missing comment yields None."""
        assert await service.get_comment_tree(uuid4()) is None


class TestGetReplies:
    """Tests for get_replies method."""

    @pytest.mark.asyncio
    async def test_direct_replies_only(
        self, service: CommentService, abc_thread: tuple[UUID, UUID, UUID]
    ) -> None:
        """Only direct children are returned, with their own reply counts."""
        a, b, _ = abc_thread

        replies = await service.get_replies(a)

        assert [r.comment_id for r in replies] == [b]
        assert replies[0].reply_count == 1
        assert replies[0].children == []

    @pytest.mark.asyncio
    async def test_counts_match_thread_view(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        post_id: UUID,
        comment_factory: Callable[..., Comment],
    ) -> None:
        """Replies linked from another post are not counted, as in threads."""
        a = comment_factory()
        b = comment_factory(parent=a, minutes=1)
        same_post = comment_factory(parent=b, minutes=2)
        other_post = comment_factory(parent=b, minutes=3, post=uuid4())
        repository.seed(a, b, same_post, other_post)

        replies = await service.get_replies(a.comment_id)
        forest = await service.get_thread(post_id)

        assert replies[0].reply_count == 1
        assert forest[0].children[0].reply_count == replies[0].reply_count

    @pytest.mark.asyncio
    async def test_missing_parent(self, service: CommentService) -> None:
        """Replies of a missing comment raise not found."""
        with pytest.raises(CommentNotFoundError):
            await service.get_replies(uuid4())


class TestCreateComment:
    """Tests for create_comment method."""

    @pytest.mark.asyncio
    async def test_anonymous_top_level(
        self, service: CommentService, repository: InMemoryCommentRepository, post_id: UUID
    ) -> None:
        """Unauthenticated callers create anonymous comments; 0 means no parent."""
        comment_id = await service.create_comment(
            post_id, "Hello", ANONYMOUS_IDENTITY, parent_id=NO_PARENT_SENTINEL
        )

        stored = repository.rows[comment_id]
        assert stored.anonymous is True
        assert stored.owner_id is None
        assert stored.parent_id is None

        forest = await service.get_thread(post_id)
        assert forest[0].author == ANONYMOUS_AUTHOR

    @pytest.mark.asyncio
    async def test_owned(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        post_id: UUID,
        alice: User,
    ) -> None:
        """Identified callers own their comments."""
        comment_id = await service.create_comment(post_id, "Mine", identity_for(alice))

        stored = repository.rows[comment_id]
        assert stored.owner_id == alice.user_id
        assert stored.anonymous is False
        assert stored.content == "Mine"

    @pytest.mark.asyncio
    async def test_not_applied(
        self, service: CommentService, repository: InMemoryCommentRepository, post_id: UUID
    ) -> None:
        """A write the store did not apply is a persistence error."""
        repository.insert = AsyncMock(return_value=False)

        with pytest.raises(CommentPersistenceError):
            await service.create_comment(post_id, "x", ANONYMOUS_IDENTITY)

    @pytest.mark.asyncio
    async def test_driver_error_converted(
        self, service: CommentService, repository: InMemoryCommentRepository, post_id: UUID
    ) -> None:
        """Driver failures surface as a generic persistence error."""
        repository.insert = AsyncMock(side_effect=OperationTimedOut("node 10.0.0.1 down"))

        with pytest.raises(CommentPersistenceError) as exc_info:
            await service.create_comment(post_id, "x", ANONYMOUS_IDENTITY)

        assert "10.0.0.1" not in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, OperationTimedOut)


class TestUpdateComment:
    """Tests for update_comment method."""

    @pytest.mark.asyncio
    async def test_owner_updates(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        alice: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """The authorized owner can change the content."""
        a, _, _ = abc_thread

        assert await service.update_comment(a, "edited", identity_for(alice)) is True
        assert repository.rows[a].content == "edited"
        assert repository.rows[a].modified_at is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", ["other", "anonymous", "unauthorized_owner"])
    async def test_forbidden_does_not_write(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        alice: User,
        bob: User,
        abc_thread: tuple[UUID, UUID, UUID],
        caller: str,
    ) -> None:
        """Non-owners, anonymous callers and unauthorized owners are rejected."""
        a, _, _ = abc_thread
        identity = {
            "other": identity_for(bob),
            "anonymous": ANONYMOUS_IDENTITY,
            "unauthorized_owner": identity_for(alice, authorized=False),
        }[caller]
        writes = repository.writes

        with pytest.raises(CommentForbiddenError):
            await service.update_comment(a, "hijacked", identity)

        assert repository.writes == writes
        assert repository.rows[a].content == "A"

    @pytest.mark.asyncio
    async def test_anonymous_comment_immutable(
        self, service: CommentService, alice: User, abc_thread: tuple[UUID, UUID, UUID]
    ) -> None:
        """Anonymous comments cannot be updated by anyone."""
        _, _, c = abc_thread

        with pytest.raises(CommentForbiddenError):
            await service.update_comment(c, "x", identity_for(alice))
        with pytest.raises(CommentForbiddenError):
            await service.update_comment(c, "x", ANONYMOUS_IDENTITY)

    @pytest.mark.asyncio
    async def test_missing(self, service: CommentService, alice: User) -> None:
        """Updating a missing comment raises not found."""
        with pytest.raises(CommentNotFoundError):
            await service.update_comment(uuid4(), "x", identity_for(alice))

    @pytest.mark.asyncio
    async def test_lost_race(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        alice: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """A comment removed between check and write reports False."""
        a, _, _ = abc_thread
        repository.update_content = AsyncMock(return_value=False)

        assert await service.update_comment(a, "late", identity_for(alice)) is False


class TestDeleteComment:
    """Tests for delete_comment method."""

    @pytest.mark.asyncio
    async def test_reply_becomes_orphan(
        self,
        service: CommentService,
        post_id: UUID,
        bob: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """Deleting B keeps C; the thread lists C after the top-level comments."""
        a, b, c = abc_thread

        assert await service.delete_comment(b, identity_for(bob)) is True

        forest = await service.get_thread(post_id)
        assert [v.comment_id for v in forest] == [a, c]
        assert forest[0].reply_count == 0
        assert forest[0].children == []
        assert forest[1].parent_id == b
        assert await service.comment_exists(b) is False
        assert await service.comment_exists(c) is True

    @pytest.mark.asyncio
    async def test_forbidden(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        alice: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """Only the owner can delete."""
        _, b, _ = abc_thread

        with pytest.raises(CommentForbiddenError):
            await service.delete_comment(b, identity_for(alice))
        assert b in repository.rows

    @pytest.mark.asyncio
    async def test_missing(self, service: CommentService, alice: User) -> None:
        """Deleting a missing comment raises not found."""
        with pytest.raises(CommentNotFoundError):
            await service.delete_comment(uuid4(), identity_for(alice))

    @pytest.mark.asyncio
    async def test_already_gone(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        bob: User,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """A comment deleted concurrently reports False."""
        _, b, _ = abc_thread
        repository.delete = AsyncMock(return_value=False)

        assert await service.delete_comment(b, identity_for(bob)) is False


class TestListByAuthor:
    """Tests for list_by_author method."""

    @pytest.fixture
    def alice_posts(
        self,
        repository: InMemoryCommentRepository,
        comment_factory: Callable[..., Comment],
        alice: User,
        bob: User,
    ) -> list[Comment]:
        """Five top-level comments by alice, each with a two-level reply chain."""
        tops = []
        for i in range(5):
            top = comment_factory(owner=alice, minutes=i * 10, content=f"top {i}")
            reply = comment_factory(parent=top, owner=bob, minutes=i * 10 + 1)
            nested = comment_factory(parent=reply, owner=alice, minutes=i * 10 + 2)
            repository.seed(top, reply, nested)
            tops.append(top)
        return tops

    @pytest.mark.asyncio
    async def test_newest_first_pages(
        self, service: CommentService, alice_posts: list[Comment]
    ) -> None:
        """Top-level comments are paged newest first."""
        first = await service.list_by_author("alice", page=1, page_size=2)
        second = await service.list_by_author("alice", page=2, page_size=2)
        last = await service.list_by_author("alice", page=3, page_size=2)
        beyond = await service.list_by_author("alice", page=4, page_size=2)

        newest_first = [c.comment_id for c in reversed(alice_posts)]
        assert [v.comment_id for v in first] == newest_first[0:2]
        assert [v.comment_id for v in second] == newest_first[2:4]
        assert [v.comment_id for v in last] == newest_first[4:5]
        assert beyond == []

    @pytest.mark.asyncio
    async def test_replies_not_truncated(
        self, service: CommentService, alice_posts: list[Comment]
    ) -> None:
        """Each listed comment carries its whole reply tree."""
        (view,) = await service.list_by_author("alice", page=1, page_size=1)

        assert view.reply_count == 1
        (reply,) = view.children
        assert reply.author == "bob"
        assert reply.reply_count == 1
        (nested,) = reply.children
        assert nested.author == "alice"

    @pytest.mark.asyncio
    async def test_only_top_level(
        self, service: CommentService, alice_posts: list[Comment]
    ) -> None:
        """Replies by the author are not listed on their own."""
        views = await service.list_by_author("alice", page=1, page_size=100)
        assert len(views) == 5
        assert all(v.parent_id is None for v in views)

    @pytest.mark.asyncio
    async def test_other_authors(
        self, service: CommentService, alice_posts: list[Comment]
    ) -> None:
        """Authors without top-level comments list nothing."""
        assert await service.list_by_author("bob", page=1, page_size=10) == []
        assert await service.list_by_author("nobody", page=1, page_size=10) == []

    @pytest.mark.asyncio
    async def test_reply_from_other_post_view(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        comment_factory: Callable[..., Comment],
        alice: User,
    ) -> None:
        """Replies are threaded from the listed comment's own post."""
        other_post = uuid4()
        top = comment_factory(post=other_post, owner=alice)
        reply = comment_factory(post=other_post, parent=top, minutes=1)
        repository.seed(top, reply)

        (view,) = await service.list_by_author("alice", page=1, page_size=10)

        assert view.post_id == other_post
        assert [c.comment_id for c in view.children] == [reply.comment_id]

    @pytest.mark.asyncio
    async def test_anonymous_author(
        self,
        service: CommentService,
        repository: InMemoryCommentRepository,
        comment_factory: Callable[..., Comment],
        alice: User,
    ) -> None:
        """The anonymous author lists comments created without identity."""
        anon = comment_factory()
        repository.seed(anon, comment_factory(owner=alice, minutes=1))

        views = await service.list_by_author(ANONYMOUS_AUTHOR, page=1, page_size=10)

        assert [v.comment_id for v in views] == [anon.comment_id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("page", "page_size"), [(0, 10), (1, 0), (-1, -1)])
    async def test_invalid_window(
        self, service: CommentService, page: int, page_size: int
    ) -> None:
        """Pages start at 1 and sizes must be positive."""
        with pytest.raises(CommentValidationError) as exc_info:
            await service.list_by_author("alice", page=page, page_size=page_size)
        assert exc_info.value.errors


class TestRawReads:
    """Tests for comment_exists, get_comment and get_post_comments."""

    @pytest.mark.asyncio
    async def test_raw_records(
        self, service: CommentService, post_id: UUID, abc_thread: tuple[UUID, UUID, UUID]
    ) -> None:
        """Raw reads return stored records without threading."""
        a, b, c = abc_thread

        assert await service.comment_exists(a) is True
        assert (await service.get_comment(b)).parent_id == a
        assert await service.get_comment(uuid4()) is None
        records = await service.get_post_comments(post_id)
        assert [r.comment_id for r in records] == [a, b, c]

    @pytest.mark.asyncio
    async def test_driver_error_on_read(
        self, service: CommentService, repository: InMemoryCommentRepository
    ) -> None:
        """Read failures are converted too."""
        repository.list_by_post = AsyncMock(side_effect=OperationTimedOut())

        with pytest.raises(CommentPersistenceError):
            await service.get_thread(uuid4())


class TestThreadCache:
    """Tests for the Redis thread cache."""

    @pytest.fixture
    def redis(self) -> InMemoryRedis:
        """Empty in-memory cache."""
        return InMemoryRedis()

    @pytest.fixture
    def cached_service(
        self,
        repository: InMemoryCommentRepository,
        users: InMemoryUserDirectory,
        redis: InMemoryRedis,
    ) -> CommentService:
        """CommentService with a cache."""
        return CommentService(
            repository=repository, users=users, redis=redis, cache_ttl_seconds=60
        )

    @pytest.mark.asyncio
    async def test_miss_populates_cache(
        self, cached_service: CommentService, redis: InMemoryRedis, post_id: UUID, alice: User
    ) -> None:
        """A cache miss stores the post's comments under the current version."""
        await cached_service.create_comment(post_id, "x", identity_for(alice))

        forest = await cached_service.get_thread(post_id)

        key = thread_cache_key(post_id, "1")
        assert redis.ttls[key] == 60
        cached = _pool_adapter.validate_json(redis.values[key])
        assert [v.comment_id for v in cached] == [forest[0].comment_id]

    @pytest.mark.asyncio
    async def test_hit_skips_store(
        self,
        cached_service: CommentService,
        repository: InMemoryCommentRepository,
        post_id: UUID,
        abc_thread: tuple[UUID, UUID, UUID],
    ) -> None:
        """A cache hit is served without reading the store."""
        forest = await cached_service.get_thread(post_id)
        repository.list_by_post = AsyncMock()

        assert await cached_service.get_thread(post_id) == forest
        repository.list_by_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_writes_bump_version(
        self, cached_service: CommentService, redis: InMemoryRedis, post_id: UUID, alice: User
    ) -> None:
        """Create, update and delete each move the post to a new cache version."""
        identity = identity_for(alice)

        comment_id = await cached_service.create_comment(post_id, "x", identity)
        await cached_service.update_comment(comment_id, "y", identity)
        await cached_service.delete_comment(comment_id, identity)

        assert redis.values[thread_version_key(post_id)] == "3"

    @pytest.mark.asyncio
    async def test_write_during_load_is_not_hidden(
        self,
        cached_service: CommentService,
        repository: InMemoryCommentRepository,
        post_id: UUID,
        alice: User,
    ) -> None:
        """A comment created while a thread is loading shows up on the next read."""
        load = repository.list_by_post
        raced = []

        async def load_then_write(pid: UUID) -> list[Comment]:
            rows = await load(pid)
            if not raced:
                raced.append(
                    await cached_service.create_comment(pid, "late", identity_for(alice))
                )
            return rows

        repository.list_by_post = load_then_write

        assert await cached_service.get_thread(post_id) == []
        forest = await cached_service.get_thread(post_id)

        assert [v.comment_id for v in forest] == raced

    @pytest.mark.asyncio
    async def test_deep_thread_cached(
        self,
        cached_service: CommentService,
        repository: InMemoryCommentRepository,
        redis: InMemoryRedis,
        post_id: UUID,
        comment_factory: Callable[..., Comment],
    ) -> None:
        """Threads deeper than the serializer nesting limit are cached and served."""
        chain = [comment_factory()]
        for i in range(300):
            chain.append(comment_factory(parent=chain[-1], minutes=i + 1))
        repository.seed(*chain)

        first = await cached_service.get_thread(post_id)
        assert thread_cache_key(post_id, "0") in redis.values
        repository.list_by_post = AsyncMock()
        second = await cached_service.get_thread(post_id)

        assert _walk(second) == _walk(first) == [c.comment_id for c in chain]
        repository.list_by_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_corrupt_entry_ignored(
        self, cached_service: CommentService, redis: InMemoryRedis, post_id: UUID, alice: User
    ) -> None:
        """Unreadable cache entries fall back to the store."""
        await cached_service.create_comment(post_id, "x", identity_for(alice))
        redis.values[thread_cache_key(post_id, "1")] = "not json"

        assert len(await cached_service.get_thread(post_id)) == 1

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back(
        self,
        repository: InMemoryCommentRepository,
        users: InMemoryUserDirectory,
        post_id: UUID,
        alice: User,
    ) -> None:
        """Cache errors never fail a read or a write."""
        redis_mock = AsyncMock()
        redis_mock.get.side_effect = RedisConnectionError("down")
        redis_mock.incr.side_effect = RedisConnectionError("down")
        service = CommentService(repository=repository, users=users, redis=redis_mock)

        await service.create_comment(post_id, "x", identity_for(alice))
        forest = await service.get_thread(post_id)

        assert len(forest) == 1
        redis_mock.setex.assert_not_awaited()
