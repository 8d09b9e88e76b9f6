"""Comment system API endpoints.

Provides routes for:
- Thread reads (per post, per comment, direct replies)
- Author listings with pagination
- Comment create, update and delete
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentIdentity
from src.config import get_settings

from .dependencies import CommentServiceDep, ContentRulesDep, handle_comment_error
from .schemas import (
    CommentCreatedResponse,
    CommentResponse,
    CreateCommentRequest,
    MessageResponse,
    UpdateCommentRequest,
)
from .serialization import ThreadResponse
from .service import CommentError, CommentNotFoundError, CommentValidationError
from .validators import ContentRules, validate_comment_content


router = APIRouter(prefix="/v1/comments", tags=["comments"])


def _validated_content(content: str, rules: ContentRules) -> str:
    """Run the content validator, raising a 400 on failure."""
    result = validate_comment_content(content, rules)
    if not result.valid:
        raise handle_comment_error(
            CommentValidationError([{"field": "content", "error": result.message}])
        )
    return result.value


# ==============================================================================
# Reads
# ==============================================================================


@router.get(
    "/post/{post_id}",
    response_model=list[CommentResponse],
    summary="Get post comment thread",
)
async def get_post_thread(
    post_id: UUID,
    comment_service: CommentServiceDep,
) -> ThreadResponse:
    """Get all comments of a post as nested reply trees.

    Returns an empty list when the post has no comments.
    """
    try:
        forest = await comment_service.get_thread(post_id)
        return ThreadResponse(forest)
    except CommentError as e:
        raise handle_comment_error(e) from e


@router.get(
    "/id/{comment_id}",
    response_model=CommentResponse,
    summary="Get comment with replies",
)
async def get_comment_tree(
    comment_id: UUID,
    comment_service: CommentServiceDep,
) -> ThreadResponse:
    """Get a single comment with its full reply tree."""
    try:
        tree = await comment_service.get_comment_tree(comment_id)
        if tree is None:
            raise CommentNotFoundError
        return ThreadResponse(tree)
    except CommentError as e:
        raise handle_comment_error(e) from e


@router.get(
    "/author/{author_name}",
    response_model=list[CommentResponse],
    summary="List comments by author",
)
async def list_author_comments(
    author_name: str,
    comment_service: CommentServiceDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=get_settings().comment_page_size_max),
) -> ThreadResponse:
    """List an author's top-level comments, newest first.

    Pagination applies to top-level comments only; each one carries its
    complete reply tree.
    """
    try:
        trees = await comment_service.list_by_author(author_name, page, page_size)
        return ThreadResponse(trees)
    except CommentError as e:
        raise handle_comment_error(e) from e


@router.get(
    "/{comment_id}/replies",
    response_model=list[CommentResponse],
    summary="Get direct replies",
)
async def get_replies(
    comment_id: UUID,
    comment_service: CommentServiceDep,
) -> list[CommentResponse]:
    """Get the direct replies to a comment, without deeper nesting."""
    try:
        replies = await comment_service.get_replies(comment_id)
        return [CommentResponse.model_validate(reply) for reply in replies]
    except CommentError as e:
        raise handle_comment_error(e) from e


# ==============================================================================
# Writes
# ==============================================================================


@router.post(
    "/post/{post_id}",
    response_model=CommentCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create comment",
)
async def create_comment(
    post_id: UUID,
    data: CreateCommentRequest,
    comment_service: CommentServiceDep,
    rules: ContentRulesDep,
    identity: CurrentIdentity,
) -> CommentCreatedResponse:
    """Create a comment on a post.

    Works without authentication; the comment is then stored as anonymous.
    Send ``parent_id`` 0 (or omit it) for a top-level comment.
    """
    content = _validated_content(data.content, rules)
    try:
        comment_id = await comment_service.create_comment(
            post_id=post_id,
            content=content,
            identity=identity,
            parent_id=data.parent_id,
        )
        return CommentCreatedResponse(id=comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e


@router.patch(
    "/{comment_id}",
    response_model=MessageResponse,
    summary="Update comment",
)
async def update_comment(
    comment_id: UUID,
    data: UpdateCommentRequest,
    comment_service: CommentServiceDep,
    rules: ContentRulesDep,
    identity: CurrentIdentity,
) -> MessageResponse:
    """Replace the content of your own comment."""
    content = _validated_content(data.content, rules)
    try:
        updated = await comment_service.update_comment(comment_id, content, identity)
    except CommentError as e:
        raise handle_comment_error(e) from e

    if not updated:
        return MessageResponse(message="Comment was not updated", success=False)
    return MessageResponse(message="Comment updated")


@router.delete(
    "/{comment_id}",
    response_model=MessageResponse,
    summary="Delete comment",
)
async def delete_comment(
    comment_id: UUID,
    comment_service: CommentServiceDep,
    identity: CurrentIdentity,
) -> MessageResponse:
    """Delete your own comment. Replies to it are kept."""
    try:
        deleted = await comment_service.delete_comment(comment_id, identity)
    except CommentError as e:
        raise handle_comment_error(e) from e

    if not deleted:
        return MessageResponse(message="Comment was not deleted", success=False)
    return MessageResponse(message="Comment deleted")
