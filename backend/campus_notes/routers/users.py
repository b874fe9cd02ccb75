from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from campus_notes.core.deps import (
    get_authorizer,
    get_current_user,
    get_engagement_service,
    get_file_store,
    require_admin,
    require_moderator,
)
from campus_notes.core.errors import ForbiddenError
from campus_notes.core.rbac import Authorizer
from campus_notes.db.session import get_db
from campus_notes.models.enums import ContentKind, ContentStatus, Role
from campus_notes.models.user import User
from campus_notes.routers.content import serialize_items
from campus_notes.schemas.content import PendingApprovals
from campus_notes.schemas.envelope import Envelope, ListEnvelope, ok, paginated
from campus_notes.schemas.user import RoleUpdate, UserProfile, UserRead, UserStats
from campus_notes.services import users as user_service
from campus_notes.services.content_repository import MAX_PAGE_SIZE, Page
from campus_notes.services.content_stats import pending_approvals
from campus_notes.services.engagement import EngagementService
from campus_notes.services.storage import FileStore
from campus_notes.services.variants import NOTE, QUESTION_PAPER

router = APIRouter(prefix="/api/users", tags=["users"])


class VerifyUpdate(BaseModel):
    is_verified: bool = True


class TopUploader(BaseModel):
    user_id: int
    full_name: str
    department: str
    upload_count: int


class RecentUpload(BaseModel):
    kind: ContentKind
    id: int
    title: str
    subject: str
    department: str
    status: ContentStatus
    uploaded_by_user_id: int
    uploader_name: Optional[str] = None
    created_at: datetime


class DashboardStats(BaseModel):
    total_users: int
    total_notes: int
    total_question_papers: int
    pending_approvals: int
    recent_uploads: list[RecentUpload]
    top_uploaders: list[TopUploader]


@router.get("", response_model=ListEnvelope[UserRead])
def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(default=None),
    role: Optional[Role] = Query(default=None),
    department: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> dict:
    result = user_service.list_users(db, page=page, limit=limit, search=search, role=role, department=department)
    return paginated([UserRead.model_validate(user) for user in result.items], result)


@router.get("/stats/dashboard", response_model=Envelope[DashboardStats])
def dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
) -> dict:
    return ok(user_service.dashboard_stats(db, current_user, authorizer))


@router.get("/approvals/pending")
def list_pending(
    kind: Literal["all", "notes", "question_papers"] = Query(default="all", alias="type"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    moderator: User = Depends(require_moderator),
    engagement: EngagementService = Depends(get_engagement_service),
) -> dict:
    notes, papers, total = pending_approvals(db, kind=kind, page=page, limit=limit)
    data = PendingApprovals(
        notes=serialize_items(NOTE, notes, engagement, moderator),
        question_papers=serialize_items(QUESTION_PAPER, papers, engagement, moderator),
    )
    if kind == "all":
        return ok(data.model_dump(mode="json"))
    envelope = paginated([], Page(items=[], total=total, page=page, limit=limit))
    envelope["data"] = data.model_dump(mode="json")
    return envelope


@router.get("/{user_id}", response_model=Envelope[UserProfile])
def get_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
) -> dict:
    if current_user.id != user_id and not authorizer.can_view_all_stats(current_user):
        raise ForbiddenError("Not authorized to view this profile")
    user = user_service.get_user_or_404(db, user_id)
    profile = UserProfile(
        user=UserRead.model_validate(user),
        stats=UserStats(**user_service.upload_stats(db, user.id)),
    )
    return ok(profile)


@router.patch("/{user_id}/role", response_model=Envelope[UserRead])
def update_role(
    user_id: int,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    user = user_service.change_role(db, admin, user_id, payload.role)
    return ok(UserRead.model_validate(user), "User role updated successfully")


@router.patch("/{user_id}/verify", response_model=Envelope[UserRead])
def verify_user(
    user_id: int,
    payload: VerifyUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    user = user_service.set_verified(db, admin, user_id, payload.is_verified)
    message = "User verified successfully" if user.is_verified else "User verification removed"
    return ok(UserRead.model_validate(user), message)


@router.delete("/{user_id}", response_model=Envelope[None])
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    store: FileStore = Depends(get_file_store),
) -> dict:
    user_service.delete_user(db, admin, user_id, store)
    return ok(None, "User deleted successfully")
