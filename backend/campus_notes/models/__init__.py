"""Import all models so SQLAlchemy metadata is fully registered."""

from campus_notes.db.base import Base

from campus_notes.models.audit import ActivityLog
from campus_notes.models.content import ContentItemMixin, Note, QuestionPaper
from campus_notes.models.engagement import (
    ContentComment,
    ContentDownload,
    ContentLike,
    ContentView,
)
from campus_notes.models.enums import (
    ContentKind,
    ContentStatus,
    ContentVisibility,
    Difficulty,
    ExamType,
    Role,
    SortOrder,
)
from campus_notes.models.notification_pref import UserNotificationPreference
from campus_notes.models.user import User

__all__ = [
    "Base",
    "ActivityLog",
    "ContentComment",
    "ContentDownload",
    "ContentItemMixin",
    "ContentKind",
    "ContentLike",
    "ContentStatus",
    "ContentView",
    "ContentVisibility",
    "Difficulty",
    "ExamType",
    "Note",
    "QuestionPaper",
    "Role",
    "SortOrder",
    "User",
    "UserNotificationPreference",
]
