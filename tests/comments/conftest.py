"""Fixtures for comment tests."""

from collections.abc import Callable
from uuid import UUID, uuid4

import pytest

from src.comments.models import Comment
from src.comments.service import CommentService
from src.users.models import User
from tests.comments.factories import (
    InMemoryCommentRepository,
    InMemoryUserDirectory,
    make_comment,
)


@pytest.fixture
def post_id() -> UUID:
    """Test post ID."""
    return uuid4()


@pytest.fixture
def alice() -> User:
    """Registered user with an avatar."""
    return User(user_id=uuid4(), name="alice", avatar_url="https://cdn.test/alice.png")


@pytest.fixture
def bob() -> User:
    """Registered user without an avatar."""
    return User(user_id=uuid4(), name="bob")


@pytest.fixture
def repository() -> InMemoryCommentRepository:
    """Empty in-memory comment store."""
    return InMemoryCommentRepository()


@pytest.fixture
def users(alice: User, bob: User) -> InMemoryUserDirectory:
    """Identity store holding alice and bob."""
    return InMemoryUserDirectory(alice, bob)


@pytest.fixture
def service(
    repository: InMemoryCommentRepository, users: InMemoryUserDirectory
) -> CommentService:
    """CommentService over in-memory stores, without cache."""
    return CommentService(repository=repository, users=users)


@pytest.fixture
def comment_factory(post_id: UUID) -> Callable[..., Comment]:
    """Build comments on the test post."""

    def factory(**kwargs) -> Comment:
        return make_comment(kwargs.pop("post", post_id), **kwargs)

    return factory
