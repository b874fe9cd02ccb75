from __future__ import annotations

from typing import Optional

from sqlalchemy import Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_notes.db.base import Base, IDMixin, TimestampMixin
from campus_notes.models.enums import ContentKind


class ActivityLog(IDMixin, TimestampMixin, Base):
    __tablename__ = "activity_logs"

    actor_user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    content_kind: Mapped[Optional[ContentKind]] = mapped_column(Enum(ContentKind, name="content_kind"), nullable=True)
    content_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    actor: Mapped[Optional["User"]] = relationship(back_populates="activities")
