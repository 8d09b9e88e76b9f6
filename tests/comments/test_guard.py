"""Tests for the mutation gate."""

from collections.abc import Callable

import pytest

from src.auth.schemas import ANONYMOUS_IDENTITY, Identity
from src.comments.guard import MutationDecision, decide_mutation
from src.comments.models import Comment
from src.users.models import User
from tests.comments.factories import identity_for


class TestDecideMutation:
    """Tests for decide_mutation function."""

    def test_owner_authorized(
        self, comment_factory: Callable[..., Comment], alice: User
    ) -> None:
        """The authorized owner may mutate."""
        comment = comment_factory(owner=alice)
        assert decide_mutation(comment, identity_for(alice)) is MutationDecision.ALLOWED

    def test_missing_comment(self, alice: User) -> None:
        """A missing comment is reported as not found."""
        assert decide_mutation(None, identity_for(alice)) is MutationDecision.NOT_FOUND

    def test_missing_comment_wins_for_anonymous(self) -> None:
        """Not found is reported before ownership is considered."""
        assert decide_mutation(None, ANONYMOUS_IDENTITY) is MutationDecision.NOT_FOUND

    def test_owner_not_authorized(
        self, comment_factory: Callable[..., Comment], alice: User
    ) -> None:
        """The owner without authorization is forbidden."""
        comment = comment_factory(owner=alice)
        decision = decide_mutation(comment, identity_for(alice, authorized=False))
        assert decision is MutationDecision.FORBIDDEN

    def test_other_user(
        self, comment_factory: Callable[..., Comment], alice: User, bob: User
    ) -> None:
        """Authorized non-owners are forbidden."""
        comment = comment_factory(owner=alice)
        assert decide_mutation(comment, identity_for(bob)) is MutationDecision.FORBIDDEN

    def test_anonymous_caller(
        self, comment_factory: Callable[..., Comment], alice: User
    ) -> None:
        """Anonymous callers are forbidden."""
        comment = comment_factory(owner=alice)
        assert decide_mutation(comment, ANONYMOUS_IDENTITY) is MutationDecision.FORBIDDEN

    @pytest.mark.parametrize("authorized", [True, False])
    def test_anonymous_comment(
        self, comment_factory: Callable[..., Comment], authorized: bool
    ) -> None:
        """Comments without an owner can never be mutated."""
        comment = comment_factory()
        caller = Identity(authorized=authorized)
        assert decide_mutation(comment, caller) is MutationDecision.FORBIDDEN
