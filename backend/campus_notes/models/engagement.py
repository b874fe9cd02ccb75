from __future__ import annotations

from typing import Optional

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_notes.db.base import Base, IDMixin, TimestampMixin
from campus_notes.models.enums import ContentKind


class ContentEngagementMixin(IDMixin, TimestampMixin):
    """Engagement rows point at a content item by (kind, id) so both variants share them."""

    content_kind: Mapped[ContentKind] = mapped_column(Enum(ContentKind, name="content_kind"), nullable=False)
    content_id: Mapped[int] = mapped_column(Integer, nullable=False)


class ContentLike(ContentEngagementMixin, Base):
    __tablename__ = "content_likes"
    __table_args__ = (
        UniqueConstraint("content_kind", "content_id", "user_id", name="uq_content_likes_item_user"),
        Index("ix_content_likes_item", "content_kind", "content_id"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class ContentView(ContentEngagementMixin, Base):
    __tablename__ = "content_views"
    __table_args__ = (
        UniqueConstraint("content_kind", "content_id", "user_id", name="uq_content_views_item_user"),
        Index("ix_content_views_item", "content_kind", "content_id"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class ContentDownload(ContentEngagementMixin, Base):
    __tablename__ = "content_downloads"
    __table_args__ = (
        Index("ix_content_downloads_item", "content_kind", "content_id"),
    )

    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class ContentComment(ContentEngagementMixin, Base):
    __tablename__ = "content_comments"
    __table_args__ = (
        Index("ix_content_comments_item", "content_kind", "content_id"),
    )

    author_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    author: Mapped["User"] = relationship(lazy="joined")


ENGAGEMENT_MODELS = (ContentLike, ContentView, ContentDownload, ContentComment)
