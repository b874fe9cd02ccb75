from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_notes.db.base import Base, TimestampMixin


class UserNotificationPreference(TimestampMixin, Base):
    __tablename__ = "user_notification_prefs"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    new_notes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    new_question_papers: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user: Mapped["User"] = relationship(back_populates="notification_preferences")
