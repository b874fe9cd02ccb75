from __future__ import annotations

from typing import Dict, Optional

from campus_notes.core.errors import ForbiddenError
from campus_notes.models.enums import Role


ROLE_CAPABILITIES: dict[Role, Dict[str, bool]] = {
    Role.ADMIN: {
        "moderate_content": True,
        "manage_any_content": True,
        "manage_users": True,
        "delete_any_comment": True,
        "view_all_stats": True,
    },
    Role.TEACHER: {
        "moderate_content": True,
        "manage_any_content": False,
        "manage_users": False,
        "delete_any_comment": False,
        "view_all_stats": False,
    },
    Role.STUDENT: {
        "moderate_content": False,
        "manage_any_content": False,
        "manage_users": False,
        "delete_any_comment": False,
        "view_all_stats": False,
    },
}


def _coerce_role(value: Role | str | None) -> Optional[Role]:
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value))
    except ValueError:
        return None


def get_capabilities_for_user(user) -> Dict[str, bool]:
    role = _coerce_role(getattr(user, "role", None)) if user is not None else None
    if role is None:
        return {key: False for key in ROLE_CAPABILITIES[Role.STUDENT]}
    return dict(ROLE_CAPABILITIES[role])


class Authorizer:
    """Capability checks injected into the workflows instead of inline role comparisons."""

    def capabilities(self, user) -> Dict[str, bool]:
        return get_capabilities_for_user(user)

    def _has(self, user, capability: str) -> bool:
        return self.capabilities(user).get(capability, False)

    def can_moderate(self, user) -> bool:
        return self._has(user, "moderate_content")

    def can_manage(self, user, item) -> bool:
        if user is None:
            return False
        if item.uploaded_by_user_id == user.id:
            return True
        return self._has(user, "manage_any_content")

    def can_view_unpublished(self, user, item) -> bool:
        if user is None:
            return False
        return item.uploaded_by_user_id == user.id or self.can_moderate(user)

    def can_delete_comment(self, user, comment) -> bool:
        if user is None:
            return False
        return comment.author_user_id == user.id or self._has(user, "delete_any_comment")

    def can_manage_users(self, user) -> bool:
        return self._has(user, "manage_users")

    def can_view_all_stats(self, user) -> bool:
        return self._has(user, "view_all_stats")

    def require_moderator(self, user) -> None:
        if not self.can_moderate(user):
            raise ForbiddenError("Access denied. Moderator privileges required.")

    def require_user_manager(self, user) -> None:
        if not self.can_manage_users(user):
            raise ForbiddenError("Access denied. Admin privileges required.")
