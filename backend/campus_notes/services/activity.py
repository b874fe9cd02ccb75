from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from campus_notes.models.audit import ActivityLog
from campus_notes.models.enums import ContentKind


def log_activity(
    db: Session,
    *,
    actor_user_id: Optional[int],
    activity_type: str,
    content_kind: Optional[ContentKind] = None,
    content_id: Optional[int] = None,
    message: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ActivityLog:
    activity = ActivityLog(
        actor_user_id=actor_user_id,
        type=activity_type,
        content_kind=content_kind,
        content_id=content_id,
        message=message,
        payload_json=payload,
    )
    db.add(activity)
    db.flush()
    return activity
