"""Authorization gate for comment updates and deletions."""

from enum import Enum

from src.auth.schemas import Identity

from .models import Comment


class MutationDecision(str, Enum):
    """Outcome of the mutation gate."""

    ALLOWED = "allowed"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


def decide_mutation(comment: Comment | None, identity: Identity) -> MutationDecision:
    """Decide whether ``identity`` may edit or delete ``comment``.

    Allowed only when the comment exists, the caller owns it and the caller's
    authorization flag is set. Anonymous comments have no owner, so nobody
    (including anonymous callers) can ever mutate them.
    """
    if comment is None:
        return MutationDecision.NOT_FOUND
    if comment.owner_id is None or identity.user_id is None:
        return MutationDecision.FORBIDDEN
    if identity.user_id != comment.owner_id or not identity.authorized:
        return MutationDecision.FORBIDDEN
    return MutationDecision.ALLOWED
