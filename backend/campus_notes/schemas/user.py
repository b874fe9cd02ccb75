from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from campus_notes.models.enums import Role
from campus_notes.schemas.base import ORMModel


def _normalize_email(value: str) -> str:
    value = (value or "").strip()
    local, _, domain = value.partition("@")
    if not local or not domain or "." not in domain:
        raise ValueError("Please enter a valid email")
    return value.lower()


class UserSummary(ORMModel):
    id: int
    full_name: str
    email: str
    department: str
    role: Role


class UserRead(UserSummary):
    semester: Optional[int] = None
    avatar_url: Optional[str] = None
    is_active: bool
    is_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime


class UserRegister(ORMModel):
    email: str
    password: str = Field(..., min_length=6, max_length=128)
    full_name: str = Field(..., min_length=2, max_length=100)
    department: str = Field(..., min_length=1, max_length=100)
    semester: Optional[int] = Field(default=None, ge=1, le=8)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("full_name", "department")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field required")
        return value


class ProfileUpdate(ORMModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    department: Optional[str] = Field(default=None, min_length=1, max_length=100)
    semester: Optional[int] = Field(default=None, ge=1, le=8)

    @field_validator("full_name", "department")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("Field cannot be blank")
        return value


class PasswordChange(ORMModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)
    confirm_password: str


class RoleUpdate(ORMModel):
    role: Role


class NotificationPreferenceRead(ORMModel):
    email_enabled: bool = True
    new_notes: bool = True
    new_question_papers: bool = True


class NotificationPreferenceUpdate(ORMModel):
    email_enabled: Optional[bool] = None
    new_notes: Optional[bool] = None
    new_question_papers: Optional[bool] = None


class TokenResponse(ORMModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class UserStats(ORMModel):
    notes_uploaded: int = 0
    question_papers_uploaded: int = 0
    total_downloads: int = 0


class UserProfile(ORMModel):
    user: UserRead
    stats: UserStats
