"""Submission and moderation of notes and question papers.

One workflow serves both variants; per-variant differences (schema, upload
category, notification preference, search fields) come from ``ContentVariant``.

Durable states are ``pending`` and ``approved``. Rejection deletes the item and
its file. Publication (direct or through approval) hands a notice for every
interested recipient to the dispatcher and returns without waiting for it.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, BinaryIO, Iterator, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from campus_notes.core.errors import DependencyError, FieldError, ForbiddenError, NotFoundError, ValidationError
from campus_notes.core.observability import content_submissions_total, moderation_decisions_total
from campus_notes.core.rbac import Authorizer
from campus_notes.db.base import utcnow
from campus_notes.models.enums import ContentStatus
from campus_notes.models.user import User
from campus_notes.schemas.content import ModerationDecision
from campus_notes.services.activity import log_activity
from campus_notes.services.content_repository import MAX_PAGE_SIZE, ContentQuery, ContentRepository, Page
from campus_notes.services.notification_templates import build_new_content_email, build_rejection_email
from campus_notes.services.notifications import NotificationDispatcher, NotificationMessage, find_interested_recipients
from campus_notes.services.storage import FileStore
from campus_notes.services.variants import ContentVariant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncomingFile:
    filename: Optional[str]
    content_type: Optional[str]
    stream: BinaryIO


@dataclass
class ModerationOutcome:
    approved: bool
    item: Any = None
    fanout: Optional[Future] = None


class ContentWorkflow:
    def __init__(
        self,
        db: Session,
        *,
        store: FileStore,
        dispatcher: NotificationDispatcher,
        authorizer: Authorizer,
        base_url: str,
    ) -> None:
        self.db = db
        self.store = store
        self.dispatcher = dispatcher
        self.authorizer = authorizer
        self.base_url = base_url
        self.repository = ContentRepository(db)

    # -- helpers ---------------------------------------------------------

    def _get_or_404(self, variant: ContentVariant, item_id: int):
        item = self.repository.get(variant, item_id)
        if item is None:
            raise NotFoundError(f"{variant.label} not found")
        return item

    def _discard_file(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception:
            logger.exception("file_cleanup_failed", extra={"storage_key": key})

    @contextmanager
    def _transaction(self, message: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DependencyError(message) from exc

    def _announce(self, variant: ContentVariant, item) -> Optional[Future]:
        try:
            recipients = find_interested_recipients(
                self.db,
                department=item.department,
                preference_attr=variant.preference_attr,
                exclude_user_id=item.uploaded_by_user_id,
            )
        except SQLAlchemyError:
            logger.exception(
                "recipient_lookup_failed",
                extra={"content_kind": variant.kind.value, "content_id": item.id},
            )
            return None

        messages = []
        for user in recipients:
            content = build_new_content_email(
                kind=variant.kind,
                title=item.title,
                subject=item.subject,
                department=item.department,
                recipient_name=user.full_name,
                base_url=self.base_url,
                **variant.extra_template_context(item),
            )
            messages.append(NotificationMessage(recipient=user.email, recipient_user_id=user.id, **content))
        return self.dispatcher.submit(messages, event=f"{variant.kind.value}_published")

    # -- submission ------------------------------------------------------

    def submit(
        self,
        variant: ContentVariant,
        *,
        metadata: Mapping[str, Any],
        upload: Optional[IncomingFile],
        requester: User,
    ):
        if upload is None:
            errors = [FieldError(field="file", message="Please upload a file")]
            try:
                variant.create_schema.model_validate(dict(metadata))
            except PydanticValidationError as exc:
                errors = ValidationError.from_pydantic(exc).errors + errors
            raise ValidationError("Validation failed", errors)

        stored = self.store.save(variant.upload_category, upload.filename, upload.content_type, upload.stream)

        try:
            data = variant.create_schema.model_validate(dict(metadata))
        except PydanticValidationError as exc:
            self._discard_file(stored.key)
            raise ValidationError.from_pydantic(exc) from exc

        publish = self.authorizer.can_moderate(requester)
        now = utcnow()
        try:
            item = self.repository.create(
                variant,
                **data.model_dump(),
                file_url=stored.url,
                file_name=stored.original_name,
                file_size=stored.size,
                file_type=stored.mime_type,
                storage_key=stored.key,
                uploaded_by_user_id=requester.id,
                status=ContentStatus.APPROVED if publish else ContentStatus.PENDING,
                approved_by_user_id=requester.id if publish else None,
                approved_at=now if publish else None,
            )
            log_activity(
                self.db,
                actor_user_id=requester.id,
                activity_type="CONTENT_SUBMITTED",
                content_kind=variant.kind,
                content_id=item.id,
                message=item.title,
                payload={"status": item.status.value},
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self._discard_file(stored.key)
            raise DependencyError("Could not save the upload") from exc

        content_submissions_total.labels(kind=variant.kind.value, status=item.status.value).inc()
        self.db.refresh(item)
        if publish:
            self._announce(variant, item)
        return item

    # -- moderation ------------------------------------------------------

    def moderate(self, variant: ContentVariant, item_id: int, decision: ModerationDecision, moderator: User) -> ModerationOutcome:
        self.authorizer.require_moderator(moderator)
        item = self._get_or_404(variant, item_id)

        if decision.approved:
            with self._transaction("Could not approve the upload"):
                self.repository.update(
                    item,
                    status=ContentStatus.APPROVED,
                    approved_by_user_id=moderator.id,
                    approved_at=utcnow(),
                )
                log_activity(
                    self.db,
                    actor_user_id=moderator.id,
                    activity_type="CONTENT_APPROVED",
                    content_kind=variant.kind,
                    content_id=item.id,
                    message=item.title,
                )
            moderation_decisions_total.labels(kind=variant.kind.value, decision="approved").inc()
            self.db.refresh(item)
            return ModerationOutcome(approved=True, item=item, fanout=self._announce(variant, item))

        storage_key = item.storage_key
        title = item.title
        uploader = item.uploader
        recipient = (uploader.email, uploader.id, uploader.full_name) if uploader is not None else None
        with self._transaction("Could not reject the upload"):
            self.repository.delete(variant, item)
            log_activity(
                self.db,
                actor_user_id=moderator.id,
                activity_type="CONTENT_REJECTED",
                content_kind=variant.kind,
                content_id=item_id,
                message=title,
                payload={"reason": decision.rejection_reason} if decision.rejection_reason else None,
            )
        moderation_decisions_total.labels(kind=variant.kind.value, decision="rejected").inc()
        self._discard_file(storage_key)

        fanout = None
        if decision.rejection_reason and recipient is not None:
            email, user_id, name = recipient
            content = build_rejection_email(
                kind=variant.kind,
                title=title,
                reason=decision.rejection_reason,
                recipient_name=name,
                base_url=self.base_url,
            )
            notice = NotificationMessage(recipient=email, recipient_user_id=user_id, **content)
            fanout = self.dispatcher.submit([notice], event=f"{variant.kind.value}_rejected")
        return ModerationOutcome(approved=False, fanout=fanout)

    # -- edits, removal and reads ----------------------------------------

    def update(self, variant: ContentVariant, item_id: int, payload: Mapping[str, Any], user: User):
        """Edit metadata in place. Moderation status and the stored file are not editable here."""
        item = self._get_or_404(variant, item_id)
        if not self.authorizer.can_manage(user, item):
            raise ForbiddenError(f"Not authorized to update this {variant.label.lower()}")
        try:
            changes = variant.update_schema.model_validate(dict(payload)).changes()
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc
        if not changes:
            return item

        with self._transaction("Could not update the upload"):
            self.repository.update(item, **changes)
            log_activity(
                self.db,
                actor_user_id=user.id,
                activity_type="CONTENT_UPDATED",
                content_kind=variant.kind,
                content_id=item.id,
                message=item.title,
                payload={"fields": sorted(changes)},
            )
        self.db.refresh(item)
        return item

    def delete(self, variant: ContentVariant, item_id: int, user: User) -> None:
        item = self._get_or_404(variant, item_id)
        if not self.authorizer.can_manage(user, item):
            raise ForbiddenError(f"Not authorized to delete this {variant.label.lower()}")
        storage_key = item.storage_key
        title = item.title
        with self._transaction("Could not delete the upload"):
            self.repository.delete(variant, item)
            log_activity(
                self.db,
                actor_user_id=user.id,
                activity_type="CONTENT_DELETED",
                content_kind=variant.kind,
                content_id=item_id,
                message=title,
            )
        self._discard_file(storage_key)

    def get_visible(self, variant: ContentVariant, item_id: int, viewer: Optional[User]):
        item = self._get_or_404(variant, item_id)
        if not item.is_approved and not self.authorizer.can_view_unpublished(viewer, item):
            raise ForbiddenError(f"{variant.label} is pending approval")
        return item

    def list(self, variant: ContentVariant, query: ContentQuery, viewer: Optional[User], *, own: bool = False) -> Page:
        errors = []
        if query.page < 1:
            errors.append(FieldError(field="page", message="Page must be a positive integer"))
        if query.limit < 1 or query.limit > MAX_PAGE_SIZE:
            errors.append(FieldError(field="limit", message=f"Limit must be between 1 and {MAX_PAGE_SIZE}"))
        if query.sort_by is not None and query.sort_by not in variant.sort_fields:
            errors.append(FieldError(field="sort_by", message=f"Sort by one of: {', '.join(variant.sort_fields)}"))
        if errors:
            raise ValidationError("Validation failed", errors)

        if own:
            if viewer is None:
                raise ForbiddenError("Authentication required")
            query.uploaded_by_user_id = viewer.id
        elif not self.authorizer.can_moderate(viewer):
            query.status = ContentStatus.APPROVED
        return self.repository.find(variant, query)
