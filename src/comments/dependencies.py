"""FastAPI dependencies for the comment system.

Provides dependency injection for:
- Comment service
- Content validation rules
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.config import get_settings

from .service import CommentError, CommentService, CommentValidationError
from .validators import ContentRules


async def get_comment_service(request: Request) -> CommentService:
    """Get comment service from app state.

    Args:
        request: FastAPI request

    Returns:
        CommentService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "comment_service") or not app_state.comment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service not available",
        )
    return app_state.comment_service


def get_content_rules() -> ContentRules:
    """Content rules built from settings."""
    return ContentRules.from_settings(get_settings())


# Type aliases for dependency injection
CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]
ContentRulesDep = Annotated[ContentRules, Depends(get_content_rules)]


def handle_comment_error(error: CommentError) -> HTTPException:
    """Convert comment errors to HTTP exceptions.

    Validation errors carry their field list as the detail; every other
    error only exposes its generic message.

    Args:
        error: Comment error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "comment_not_found": status.HTTP_404_NOT_FOUND,
        "forbidden": status.HTTP_403_FORBIDDEN,
        "validation_failed": status.HTTP_400_BAD_REQUEST,
        "persistence_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(error, CommentValidationError):
        return HTTPException(status_code=status_code, detail=error.errors)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
