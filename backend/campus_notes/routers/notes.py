from __future__ import annotations

from typing import Optional

from fastapi import Query

from campus_notes.routers.content import build_content_router
from campus_notes.services.variants import NOTE


def note_filters(
    department: Optional[str] = Query(default=None),
    semester: Optional[int] = Query(default=None, ge=1, le=8),
) -> dict:
    return {"department": department, "semester": semester}


router = build_content_router(NOTE, prefix="/api/notes", tags=["notes"], filters_dependency=note_filters)
