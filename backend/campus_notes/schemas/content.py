from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from campus_notes.models.enums import ContentKind, ContentStatus, ContentVisibility, Difficulty, ExamType
from campus_notes.schemas.base import ORMModel
from campus_notes.schemas.user import UserSummary


MAX_TAGS = 20


def _check_year(value: int) -> int:
    latest = date.today().year + 1
    if value < 2000 or value > latest:
        raise ValueError(f"Year must be between 2000 and {latest}")
    return value


def parse_tags(value: Any) -> List[str]:
    """Accept a list, a JSON array string, or comma-separated text."""
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValueError("Tags must be a JSON array or comma-separated text") from exc
        else:
            value = raw.split(",")
    if not isinstance(value, (list, tuple, set)):
        raise ValueError("Tags must be a list of strings")
    tags: List[str] = []
    for item in value:
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    if len(tags) > MAX_TAGS:
        raise ValueError(f"At most {MAX_TAGS} tags are allowed")
    return tags


class ContentCreateBase(BaseModel):
    """Metadata accepted alongside an upload. Built from raw form fields."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", populate_by_name=True)

    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    subject: str = Field(..., min_length=1, max_length=200)
    department: str = Field(..., min_length=1, max_length=100)
    semester: int = Field(..., ge=1, le=8)
    tags: List[str] = Field(default_factory=list)
    visibility: ContentVisibility = ContentVisibility.PUBLIC

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if not (isinstance(value, str) and not value.strip())}
        return data

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, value: Any) -> List[str]:
        return parse_tags(value)


class NoteCreate(ContentCreateBase):
    unit: Optional[str] = Field(default=None, max_length=100)
    topic: Optional[str] = Field(default=None, max_length=200)


class QuestionPaperCreate(ContentCreateBase):
    exam_type: ExamType = Field(validation_alias=AliasChoices("exam_type", "examType"))
    year: int
    month: Optional[str] = Field(default=None, max_length=20)
    duration: Optional[str] = Field(default=None, max_length=50)
    max_marks: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("max_marks", "maxMarks"))
    difficulty: Difficulty = Difficulty.MEDIUM
    syllabus: Optional[str] = None

    @field_validator("year")
    @classmethod
    def validate_year(cls, value: int) -> int:
        return _check_year(value)


class ContentUpdateBase(BaseModel):
    """Partial metadata edit. Omitted or null fields keep their stored value."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    subject: Optional[str] = Field(default=None, min_length=1, max_length=200)
    department: Optional[str] = Field(default=None, min_length=1, max_length=100)
    semester: Optional[int] = Field(default=None, ge=1, le=8)
    tags: Optional[List[str]] = None
    visibility: Optional[ContentVisibility] = None

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, value: Any) -> Optional[List[str]]:
        return None if value is None else parse_tags(value)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class NoteUpdate(ContentUpdateBase):
    unit: Optional[str] = Field(default=None, max_length=100)
    topic: Optional[str] = Field(default=None, max_length=200)


class QuestionPaperUpdate(ContentUpdateBase):
    exam_type: Optional[ExamType] = Field(default=None, validation_alias=AliasChoices("exam_type", "examType"))
    year: Optional[int] = None
    month: Optional[str] = Field(default=None, max_length=20)
    duration: Optional[str] = Field(default=None, max_length=50)
    max_marks: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("max_marks", "maxMarks"))
    difficulty: Optional[Difficulty] = None
    syllabus: Optional[str] = None

    @field_validator("year")
    @classmethod
    def validate_year(cls, value: Optional[int]) -> Optional[int]:
        return None if value is None else _check_year(value)


class ContentRead(ORMModel):
    id: int
    kind: ContentKind
    title: str
    description: Optional[str] = None
    subject: str
    department: str
    semester: int
    tags: List[str] = Field(default_factory=list)
    visibility: ContentVisibility
    file_url: str
    file_name: str
    file_size: int
    file_type: str
    status: ContentStatus
    uploaded_by_user_id: int
    uploader: Optional[UserSummary] = None
    approved_by_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    downloads: int = 0
    likes_count: int = 0
    comments_count: int = 0
    views_count: int = 0
    user_liked: bool = False
    created_at: datetime
    updated_at: datetime


class NoteRead(ContentRead):
    unit: Optional[str] = None
    topic: Optional[str] = None


class QuestionPaperRead(ContentRead):
    exam_type: ExamType
    year: int
    month: Optional[str] = None
    duration: Optional[str] = None
    max_marks: Optional[int] = None
    difficulty: Difficulty
    syllabus: Optional[str] = None


class ModerationDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approved: bool
    rejection_reason: Optional[str] = Field(
        default=None,
        max_length=1000,
        validation_alias=AliasChoices("rejection_reason", "rejectionReason"),
    )


class ExamTypeCount(BaseModel):
    exam_type: ExamType
    count: int


class YearCount(BaseModel):
    year: int
    count: int


class SubjectCount(BaseModel):
    subject: str
    count: int


class QuestionPaperStats(BaseModel):
    total: int
    by_exam_type: List[ExamTypeCount]
    by_year: List[YearCount]
    top_subjects: List[SubjectCount]


class PendingApprovals(BaseModel):
    notes: List[NoteRead] = Field(default_factory=list)
    question_papers: List[QuestionPaperRead] = Field(default_factory=list)
