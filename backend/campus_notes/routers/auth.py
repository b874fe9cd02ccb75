from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from campus_notes.core.deps import get_current_user, get_file_store
from campus_notes.core.security import create_user_token
from campus_notes.db.session import get_db
from campus_notes.models.user import User
from campus_notes.schemas.envelope import Envelope, ok
from campus_notes.schemas.user import (
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
    PasswordChange,
    ProfileUpdate,
    TokenResponse,
    UserRead,
    UserRegister,
)
from campus_notes.services import users as user_service
from campus_notes.services.activity import log_activity
from campus_notes.services.content_workflow import IncomingFile
from campus_notes.services.storage import FileStore

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("security")


def _log_auth_event(event: str, *, request: Request, extra: Optional[dict] = None) -> None:
    payload = {
        "event": event,
        "request_id": request.headers.get("x-request-id"),
        "path": request.url.path,
        "client": request.client.host if request.client else None,
    }
    if extra:
        payload.update(extra)
    logger.info(json.dumps(payload, default=str))


def _issue_token(user: User) -> TokenResponse:
    token = create_user_token(user)
    return TokenResponse(access_token=token, user=UserRead.model_validate(user))


@router.post("/register", response_model=Envelope[TokenResponse], status_code=status.HTTP_201_CREATED)
def register(payload: UserRegister, request: Request, db: Session = Depends(get_db)) -> dict:
    user = user_service.register_user(db, payload)
    log_activity(db, actor_user_id=user.id, activity_type="USER_REGISTERED", message=user.email)
    db.commit()
    _log_auth_event("user_registered", request=request, extra={"user_id": user.id})
    return ok(_issue_token(user), "User registered successfully")


@router.post("/login")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
) -> dict:
    email = form_data.username.strip().lower()
    user = user_service.authenticate(db, email, form_data.password)
    if user is None:
        _log_auth_event("login_failed", request=request, extra={"email": email})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    _log_auth_event("login_success", request=request, extra={"user_id": user.id})
    issued = _issue_token(user)
    # Top-level token keeps the OAuth2 password flow usable from the docs UI.
    return {
        "success": True,
        "message": "Login successful",
        "data": issued.model_dump(mode="json"),
        "access_token": issued.access_token,
        "token_type": issued.token_type,
    }


@router.get("/me", response_model=Envelope[UserRead])
def me(current_user: User = Depends(get_current_user)) -> dict:
    return ok(UserRead.model_validate(current_user))


@router.patch("/me", response_model=Envelope[UserRead])
def update_me(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    user = user_service.update_profile(db, current_user, payload)
    return ok(UserRead.model_validate(user), "Profile updated successfully")


@router.post("/me/password", response_model=Envelope[None])
def change_my_password(
    payload: PasswordChange,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    user_service.change_password(db, current_user, payload)
    _log_auth_event("password_changed", request=request, extra={"user_id": current_user.id})
    return ok(None, "Password changed successfully")


@router.post("/me/avatar", response_model=Envelope[UserRead])
async def upload_my_avatar(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store),
) -> dict:
    form = await request.form()
    try:
        upload = form.get("avatar")
        incoming = None
        if isinstance(upload, UploadFile) and upload.filename:
            incoming = IncomingFile(filename=upload.filename, content_type=upload.content_type, stream=upload.file)
        user = await run_in_threadpool(user_service.set_avatar, db, current_user, store, incoming)
    finally:
        await form.close()
    return ok(UserRead.model_validate(user), "Avatar uploaded successfully")


@router.get("/me/notifications", response_model=Envelope[NotificationPreferenceRead])
def get_my_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    return ok(NotificationPreferenceRead.model_validate(user_service.get_preferences(db, current_user)))


@router.patch("/me/notifications", response_model=Envelope[NotificationPreferenceRead])
def update_my_notifications(
    payload: NotificationPreferenceUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    prefs = user_service.update_preferences(db, current_user, payload)
    return ok(NotificationPreferenceRead.model_validate(prefs), "Notification preferences updated")
