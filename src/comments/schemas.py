"""Pydantic schemas for the comment API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import normalize_parent_id


# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateCommentRequest(BaseModel):
    """Request to create a comment on a post.

    Content rules are applied by the content validator, not here.
    ``parent_id`` accepts ``0`` (or the nil UUID) as "no parent".
    """

    content: str
    parent_id: UUID | None = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def normalize_parent(cls, v: Any) -> Any:
        """Treat the ``0`` sentinel as a top-level comment."""
        if isinstance(v, int | str) and str(v) in ("0", ""):
            return None
        return v

    @field_validator("parent_id")
    @classmethod
    def drop_nil_parent(cls, v: UUID | None) -> UUID | None:
        """Map the nil UUID to None after parsing."""
        return normalize_parent_id(v)


class UpdateCommentRequest(BaseModel):
    """Request to update a comment's content."""

    content: str


# ==============================================================================
# Response Schemas
# ==============================================================================


class CommentResponse(BaseModel):
    """A comment with its author, reply count and nested replies."""

    model_config = ConfigDict(from_attributes=True)

    comment_id: UUID
    post_id: UUID
    parent_id: UUID | None = None
    owner_id: UUID | None = None
    content: str
    anonymous: bool
    created_at: datetime
    modified_at: datetime | None = None
    author: str
    avatar: str | None = None
    reply_count: int = 0
    children: list["CommentResponse"] = Field(default_factory=list)


class CommentCreatedResponse(BaseModel):
    """Id of a newly created comment."""

    id: UUID


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
    success: bool = True
