from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_notes.core.errors import ForbiddenError, NotFoundError
from campus_notes.core.observability import content_downloads_total
from campus_notes.core.rbac import Authorizer
from campus_notes.models.engagement import ContentComment, ContentDownload, ContentLike, ContentView
from campus_notes.models.user import User
from campus_notes.services.content_repository import ContentRepository
from campus_notes.services.variants import ContentVariant


@dataclass
class EngagementCounts:
    likes: int = 0
    comments: int = 0
    views: int = 0
    user_liked: bool = False


class EngagementService:
    """Likes, comments, views and downloads. Only published items accept engagement."""

    def __init__(self, db: Session, authorizer: Authorizer) -> None:
        self.db = db
        self.authorizer = authorizer
        self.repository = ContentRepository(db)

    def get_published(self, variant: ContentVariant, item_id: int):
        item = self.repository.get(variant, item_id)
        if item is None or not item.is_approved:
            raise NotFoundError(f"{variant.label} not found")
        return item

    def _scoped(self, model, variant: ContentVariant, item_id: int):
        return self.db.query(model).filter(model.content_kind == variant.kind, model.content_id == item_id)

    def toggle_like(self, variant: ContentVariant, item_id: int, user: User) -> tuple[bool, int]:
        self.get_published(variant, item_id)
        existing = self._scoped(ContentLike, variant, item_id).filter(ContentLike.user_id == user.id).first()
        if existing is not None:
            self.db.delete(existing)
            liked = False
        else:
            self.db.add(ContentLike(content_kind=variant.kind, content_id=item_id, user_id=user.id))
            liked = True
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent like from the same user already landed.
            self.db.rollback()
            liked = True
        count = self._scoped(ContentLike, variant, item_id).count()
        return liked, count

    def add_comment(self, variant: ContentVariant, item_id: int, user: User, text: str) -> ContentComment:
        self.get_published(variant, item_id)
        comment = ContentComment(
            content_kind=variant.kind,
            content_id=item_id,
            author_user_id=user.id,
            text=text,
        )
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def list_comments(self, variant: ContentVariant, item_id: int) -> list[ContentComment]:
        self.get_published(variant, item_id)
        return (
            self._scoped(ContentComment, variant, item_id)
            .order_by(ContentComment.created_at.asc(), ContentComment.id.asc())
            .all()
        )

    def delete_comment(self, variant: ContentVariant, item_id: int, comment_id: int, user: User) -> None:
        self.get_published(variant, item_id)
        comment = self._scoped(ContentComment, variant, item_id).filter(ContentComment.id == comment_id).first()
        if comment is None:
            raise NotFoundError("Comment not found")
        if not self.authorizer.can_delete_comment(user, comment):
            raise ForbiddenError("Not authorized to delete this comment")
        self.db.delete(comment)
        self.db.commit()

    def record_view(self, variant: ContentVariant, item, user: Optional[User]) -> bool:
        """Record one view per (item, user). Anonymous views are not tracked."""
        if user is None or not item.is_approved:
            return False
        seen = self._scoped(ContentView, variant, item.id).filter(ContentView.user_id == user.id).first()
        if seen is not None:
            return False
        self.db.add(ContentView(content_kind=variant.kind, content_id=item.id, user_id=user.id))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def record_download(self, variant: ContentVariant, item_id: int, user: Optional[User], ip_address: Optional[str] = None):
        item = self.get_published(variant, item_id)
        self.db.add(
            ContentDownload(
                content_kind=variant.kind,
                content_id=item_id,
                user_id=user.id if user else None,
                ip_address=ip_address,
            )
        )
        self.repository.increment_downloads(variant, item_id)
        self.db.commit()
        content_downloads_total.labels(kind=variant.kind.value).inc()
        self.db.refresh(item)
        return item

    def download_count(self, variant: ContentVariant, item_id: int) -> int:
        return self._scoped(ContentDownload, variant, item_id).count()

    def view_count(self, variant: ContentVariant, item_id: int) -> int:
        return self._scoped(ContentView, variant, item_id).count()

    def counts_for(self, variant: ContentVariant, item_ids: Iterable[int], user: Optional[User] = None) -> dict[int, EngagementCounts]:
        ids = list(item_ids)
        counts = {item_id: EngagementCounts() for item_id in ids}
        if not ids:
            return counts

        for model, attr in ((ContentLike, "likes"), (ContentComment, "comments"), (ContentView, "views")):
            rows = (
                self.db.query(model.content_id, func.count(model.id))
                .filter(model.content_kind == variant.kind, model.content_id.in_(ids))
                .group_by(model.content_id)
                .all()
            )
            for content_id, total in rows:
                setattr(counts[content_id], attr, total)

        if user is not None:
            liked_ids = (
                self.db.query(ContentLike.content_id)
                .filter(
                    ContentLike.content_kind == variant.kind,
                    ContentLike.content_id.in_(ids),
                    ContentLike.user_id == user.id,
                )
                .all()
            )
            for (content_id,) in liked_ids:
                counts[content_id].user_liked = True
        return counts
