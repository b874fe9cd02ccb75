from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, ClassVar, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from campus_notes.db.base import Base, IDMixin, TimestampMixin
from campus_notes.models.enums import ContentKind, ContentStatus, ContentVisibility, Difficulty, ExamType

if TYPE_CHECKING:
    from campus_notes.models.user import User


class ContentItemMixin(IDMixin, TimestampMixin):
    """Columns shared by every moderated upload (notes and question papers)."""

    kind: ClassVar[ContentKind]

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subject: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    semester: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    visibility: Mapped[ContentVisibility] = mapped_column(
        Enum(ContentVisibility, name="content_visibility"),
        default=ContentVisibility.PUBLIC,
        nullable=False,
    )

    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)

    status: Mapped[ContentStatus] = mapped_column(
        Enum(ContentStatus, name="content_status"),
        default=ContentStatus.PENDING,
        nullable=False,
        index=True,
    )
    uploaded_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    approved_by_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    downloads: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @declared_attr
    def uploader(cls) -> Mapped["User"]:
        return relationship("User", foreign_keys=f"{cls.__name__}.uploaded_by_user_id", lazy="joined")

    @property
    def is_approved(self) -> bool:
        return self.status == ContentStatus.APPROVED


class Note(ContentItemMixin, Base):
    __tablename__ = "notes"
    __table_args__ = (
        Index("ix_notes_department_semester_subject", "department", "semester", "subject"),
    )

    kind = ContentKind.NOTE

    unit: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    topic: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)


class QuestionPaper(ContentItemMixin, Base):
    __tablename__ = "question_papers"
    __table_args__ = (
        Index("ix_question_papers_department_semester_subject_year", "department", "semester", "subject", "year"),
    )

    kind = ContentKind.QUESTION_PAPER

    exam_type: Mapped[ExamType] = mapped_column(Enum(ExamType, name="exam_type"), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    month: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    duration: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    max_marks: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    difficulty: Mapped[Difficulty] = mapped_column(
        Enum(Difficulty, name="difficulty"),
        default=Difficulty.MEDIUM,
        nullable=False,
    )
    syllabus: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
