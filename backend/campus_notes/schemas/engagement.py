"""Schemas for likes, comments and other engagement on published items."""
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from campus_notes.schemas.base import ORMModel
from campus_notes.schemas.user import UserSummary


class CommentCreate(BaseModel):
    """Schema for posting a comment."""
    text: str = Field(..., min_length=1, max_length=500)

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Comment text is required")
        return value


class CommentRead(ORMModel):
    """Comment with its author."""
    id: int
    text: str
    author_user_id: int
    author: UserSummary
    created_at: datetime


class LikeResult(BaseModel):
    liked: bool
    likes_count: int
