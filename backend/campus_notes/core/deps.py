from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from campus_notes.core.rbac import Authorizer
from campus_notes.core.security import InvalidTokenError, user_id_from_token
from campus_notes.core.settings import settings
from campus_notes.db.session import get_db
from campus_notes.models.user import User
from campus_notes.services.content_workflow import ContentWorkflow
from campus_notes.services.engagement import EngagementService
from campus_notes.services.notifications import EmailChannel, NotificationDispatcher
from campus_notes.services.storage import FileStore, LocalFileStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)
logger = logging.getLogger("security")


def _log_auth_event(event: str, *, request: Request, extra: Optional[dict] = None) -> None:
    payload = {
        "event": event,
        "request_id": request.headers.get("x-request-id"),
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else None,
    }
    if extra:
        payload.update(extra)
    logger.info(json.dumps(payload, default=str))


def _resolve_user(request: Request, token: str, db: Session) -> Optional[User]:
    try:
        user_id = user_id_from_token(token)
    except InvalidTokenError as exc:
        _log_auth_event("token_invalid", request=request, extra={"reason": str(exc)})
        return None

    user = db.get(User, user_id)
    if not user or not user.is_active:
        _log_auth_event("user_inactive_or_missing", request=request, extra={"user_id": user_id})
        return None
    return user


def get_current_user(
    request: Request,
    token: str = Security(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = _resolve_user(request, token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(
    request: Request,
    token: Optional[str] = Security(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Anonymous callers and bad tokens both resolve to ``None``."""
    if not token:
        return None
    return _resolve_user(request, token, db)


@lru_cache(maxsize=1)
def get_authorizer() -> Authorizer:
    return Authorizer()


@lru_cache(maxsize=1)
def get_file_store() -> FileStore:
    return LocalFileStore(
        settings.ensure_uploads_dir(),
        max_file_size=settings.max_file_size_bytes,
        allowed_mime_types=settings.allowed_mime_types,
    )


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        EmailChannel(settings.email_from),
        max_workers=settings.notification_workers,
        max_pending=settings.notification_max_pending,
    )


def shutdown_dispatcher() -> None:
    if get_dispatcher.cache_info().currsize:
        get_dispatcher().shutdown()


def get_content_workflow(
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    authorizer: Authorizer = Depends(get_authorizer),
) -> ContentWorkflow:
    return ContentWorkflow(
        db,
        store=store,
        dispatcher=dispatcher,
        authorizer=authorizer,
        base_url=settings.app_base_url,
    )


def get_engagement_service(
    db: Session = Depends(get_db),
    authorizer: Authorizer = Depends(get_authorizer),
) -> EngagementService:
    return EngagementService(db, authorizer)


def require_moderator(
    current_user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
) -> User:
    authorizer.require_moderator(current_user)
    return current_user


def require_admin(
    current_user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
) -> User:
    authorizer.require_user_manager(current_user)
    return current_user
