from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from campus_notes.core.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from campus_notes.core.rbac import Authorizer
from campus_notes.core.security import get_password_hash, verify_password
from campus_notes.db.base import utcnow
from campus_notes.db.functions import folded_contains
from campus_notes.models.audit import ActivityLog
from campus_notes.models.content import Note, QuestionPaper
from campus_notes.models.engagement import ContentComment, ContentDownload, ContentLike, ContentView
from campus_notes.models.enums import ContentStatus, Role
from campus_notes.models.notification_pref import UserNotificationPreference
from campus_notes.models.user import User
from campus_notes.schemas.user import NotificationPreferenceUpdate, PasswordChange, ProfileUpdate, UserRegister
from campus_notes.services.activity import log_activity
from campus_notes.services.content_repository import ContentRepository, Page
from campus_notes.services.content_workflow import IncomingFile
from campus_notes.services.storage import FileStore
from campus_notes.services.variants import NOTE, QUESTION_PAPER, ContentVariant

logger = logging.getLogger(__name__)

AVATAR_MIME_TYPES = ("image/jpeg", "image/png", "image/gif")
RECENT_UPLOADS_WINDOW = timedelta(days=7)


def register_user(db: Session, payload: UserRegister) -> User:
    if db.query(User).filter(User.email == payload.email).first():
        raise ConflictError("User already exists with this email")
    user = User(
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        full_name=payload.full_name,
        department=payload.department,
        semester=payload.semester,
        role=Role.STUDENT,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
    if not user or not user.is_active or not verify_password(password, user.hashed_password):
        return None
    user.last_login_at = utcnow()
    db.commit()
    return user


def get_preferences(db: Session, user: User) -> UserNotificationPreference:
    prefs = db.get(UserNotificationPreference, user.id)
    if prefs is None:
        prefs = UserNotificationPreference(user_id=user.id, email_enabled=True, new_notes=True, new_question_papers=True)
    return prefs


def update_preferences(db: Session, user: User, payload: NotificationPreferenceUpdate) -> UserNotificationPreference:
    prefs = db.get(UserNotificationPreference, user.id)
    if prefs is None:
        prefs = UserNotificationPreference(user_id=user.id, email_enabled=True, new_notes=True, new_question_papers=True)
        db.add(prefs)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(prefs, key, value)
    db.commit()
    db.refresh(prefs)
    return prefs


def update_profile(db: Session, user: User, payload: ProfileUpdate) -> User:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(user, key, value)
    if changes:
        log_activity(db, actor_user_id=user.id, activity_type="PROFILE_UPDATED", payload={"fields": sorted(changes)})
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, payload: PasswordChange) -> None:
    if payload.new_password != payload.confirm_password:
        raise ValidationError.for_field("confirm_password", "New password and confirm password do not match")
    if not verify_password(payload.current_password, user.hashed_password):
        raise ConflictError("Current password is incorrect")
    user.hashed_password = get_password_hash(payload.new_password)
    log_activity(db, actor_user_id=user.id, activity_type="PASSWORD_CHANGED")
    db.commit()


def _discard_file(store: FileStore, key: str) -> None:
    try:
        store.delete(key)
    except Exception:
        logger.exception("file_cleanup_failed", extra={"storage_key": key})


def set_avatar(db: Session, user: User, store: FileStore, upload: Optional[IncomingFile]) -> User:
    """Store a new avatar image and drop the previous one once the user row points at the new file."""
    if upload is None:
        raise ValidationError.for_field("avatar", "No image file provided")
    mime_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
    if mime_type not in AVATAR_MIME_TYPES:
        raise ValidationError.for_field("avatar", "Avatar must be a JPEG, PNG or GIF image")

    stored = store.save("avatars", upload.filename, upload.content_type, upload.stream)
    previous_key = user.avatar_key
    user.avatar_url = stored.url
    user.avatar_key = stored.key
    try:
        log_activity(db, actor_user_id=user.id, activity_type="AVATAR_UPDATED", message=stored.key)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _discard_file(store, stored.key)
        raise DependencyError("Could not save the avatar") from exc

    if previous_key:
        _discard_file(store, previous_key)
    db.refresh(user)
    return user


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(
    db: Session,
    *,
    page: int,
    limit: int,
    search: Optional[str] = None,
    role: Optional[Role] = None,
    department: Optional[str] = None,
) -> Page:
    query = db.query(User)
    if search:
        term = search.strip()
        query = query.filter(or_(folded_contains(User.full_name, term), folded_contains(User.email, term)))
    if role is not None:
        query = query.filter(User.role == role)
    if department:
        query = query.filter(User.department == department)
    total = query.count()
    items = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total=total, page=page, limit=limit)


def upload_stats(db: Session, user_id: int) -> dict[str, int]:
    notes_uploaded = (
        db.query(func.count(Note.id))
        .filter(Note.uploaded_by_user_id == user_id, Note.status == ContentStatus.APPROVED)
        .scalar()
    )
    papers_uploaded = (
        db.query(func.count(QuestionPaper.id))
        .filter(QuestionPaper.uploaded_by_user_id == user_id, QuestionPaper.status == ContentStatus.APPROVED)
        .scalar()
    )
    downloads = (
        db.query(func.coalesce(func.sum(Note.downloads), 0))
        .filter(Note.uploaded_by_user_id == user_id)
        .scalar()
    )
    return {
        "notes_uploaded": notes_uploaded or 0,
        "question_papers_uploaded": papers_uploaded or 0,
        "total_downloads": int(downloads or 0),
    }


def change_role(db: Session, actor: User, user_id: int, role: Role) -> User:
    user = get_user_or_404(db, user_id)
    if user.role == Role.ADMIN and role != Role.ADMIN and _admin_count(db) <= 1:
        raise ConflictError("Cannot demote the last admin user")
    previous = user.role
    user.role = role
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="USER_ROLE_CHANGED",
        message=user.email,
        payload={"user_id": user.id, "from": previous.value, "to": role.value},
    )
    db.commit()
    db.refresh(user)
    return user


def set_verified(db: Session, actor: User, user_id: int, is_verified: bool) -> User:
    user = get_user_or_404(db, user_id)
    user.is_verified = is_verified
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="USER_VERIFIED",
        message=user.email,
        payload={"user_id": user.id, "is_verified": is_verified},
    )
    db.commit()
    db.refresh(user)
    return user


def _admin_count(db: Session) -> int:
    return db.query(func.count(User.id)).filter(User.role == Role.ADMIN).scalar() or 0


def delete_user(db: Session, actor: User, user_id: int, store: FileStore) -> None:
    """Remove a user together with their uploads and the stored files."""
    user = get_user_or_404(db, user_id)
    if user.role == Role.ADMIN and _admin_count(db) <= 1:
        raise ConflictError("Cannot delete the last admin user")
    if user.id == actor.id:
        raise ConflictError("You cannot delete your own account")

    repository = ContentRepository(db)
    storage_keys: list[str] = []
    for variant in (NOTE, QUESTION_PAPER):
        uploads = db.query(variant.model).filter(variant.model.uploaded_by_user_id == user.id).all()
        for item in uploads:
            storage_keys.append(item.storage_key)
            repository.delete(variant, item)

    for model, column in (
        (ContentLike, ContentLike.user_id),
        (ContentView, ContentView.user_id),
        (ContentComment, ContentComment.author_user_id),
    ):
        db.query(model).filter(column == user.id).delete(synchronize_session=False)
    db.query(ContentDownload).filter(ContentDownload.user_id == user.id).update(
        {ContentDownload.user_id: None}, synchronize_session=False
    )
    db.query(ActivityLog).filter(ActivityLog.actor_user_id == user.id).update(
        {ActivityLog.actor_user_id: None}, synchronize_session=False
    )

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="USER_DELETED",
        message=user.email,
        payload={"user_id": user.id, "uploads_removed": len(storage_keys)},
    )
    if user.avatar_key:
        storage_keys.append(user.avatar_key)
    db.delete(user)
    db.commit()

    for key in storage_keys:
        _discard_file(store, key)


def _approved_count(db: Session, variant: ContentVariant, uploader_id: Optional[int]) -> int:
    model = variant.model
    query = db.query(func.count(model.id)).filter(model.status == ContentStatus.APPROVED)
    if uploader_id is not None:
        query = query.filter(model.uploaded_by_user_id == uploader_id)
    return query.scalar() or 0


def _pending_count(db: Session, variant: ContentVariant) -> int:
    model = variant.model
    return db.query(func.count(model.id)).filter(model.status == ContentStatus.PENDING).scalar() or 0


def dashboard_stats(db: Session, viewer: User, authorizer: Authorizer) -> dict:
    """Students see their own totals; moderators see site totals and the review queue."""
    moderator = authorizer.can_moderate(viewer)
    scope = None if moderator else viewer.id
    stats = {
        "total_users": db.query(func.count(User.id)).scalar() if authorizer.can_view_all_stats(viewer) else 0,
        "total_notes": _approved_count(db, NOTE, scope),
        "total_question_papers": _approved_count(db, QUESTION_PAPER, scope),
        "pending_approvals": 0,
        "recent_uploads": _recent_uploads(db, scope),
        "top_uploaders": [],
    }
    if moderator:
        stats["pending_approvals"] = _pending_count(db, NOTE) + _pending_count(db, QUESTION_PAPER)
        stats["top_uploaders"] = _top_uploaders(db)
    return stats


def _top_uploaders(db: Session, limit: int = 5) -> list[dict]:
    counts: dict[int, int] = {}
    for variant in (NOTE, QUESTION_PAPER):
        model = variant.model
        rows = db.query(model.uploaded_by_user_id, func.count(model.id)).group_by(model.uploaded_by_user_id).all()
        for user_id, total in rows:
            counts[user_id] = counts.get(user_id, 0) + total
    ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))[:limit]
    users = {user.id: user for user in db.query(User).filter(User.id.in_([user_id for user_id, _ in ranked])).all()}
    return [
        {
            "user_id": user_id,
            "full_name": users[user_id].full_name,
            "department": users[user_id].department,
            "upload_count": total,
        }
        for user_id, total in ranked
        if user_id in users
    ]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _recent_uploads(db: Session, uploader_id: Optional[int], per_kind: int = 5, limit: int = 10) -> list[dict]:
    """Newest uploads of the last week across both variants, any moderation status."""
    since = utcnow() - RECENT_UPLOADS_WINDOW
    items = []
    for variant in (NOTE, QUESTION_PAPER):
        model = variant.model
        query = db.query(model).filter(model.created_at >= since)
        if uploader_id is not None:
            query = query.filter(model.uploaded_by_user_id == uploader_id)
        items.extend(query.order_by(model.created_at.desc(), model.id.desc()).limit(per_kind).all())
    items.sort(key=lambda item: _as_utc(item.created_at), reverse=True)
    return [
        {
            "kind": item.kind,
            "id": item.id,
            "title": item.title,
            "subject": item.subject,
            "department": item.department,
            "status": item.status,
            "uploaded_by_user_id": item.uploaded_by_user_id,
            "uploader_name": item.uploader.full_name if item.uploader is not None else None,
            "created_at": item.created_at,
        }
        for item in items[:limit]
    ]
