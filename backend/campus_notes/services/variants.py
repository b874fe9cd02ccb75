from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Type

from campus_notes.models.content import Note, QuestionPaper
from campus_notes.models.enums import ContentKind
from campus_notes.schemas.content import (
    ContentCreateBase,
    ContentRead,
    ContentUpdateBase,
    NoteCreate,
    NoteRead,
    NoteUpdate,
    QuestionPaperCreate,
    QuestionPaperRead,
    QuestionPaperUpdate,
)


@dataclass(frozen=True)
class ContentVariant:
    """Per-variant traits consumed by the shared workflow, repository and routers."""

    kind: ContentKind
    model: type
    label: str
    upload_category: str
    create_schema: Type[ContentCreateBase]
    update_schema: Type[ContentUpdateBase]
    read_schema: Type[ContentRead]
    preference_attr: str
    search_fields: Tuple[str, ...]
    exact_filters: Tuple[str, ...]
    sort_fields: Tuple[str, ...]
    default_sort: str = "created_at"
    social: bool = False

    def extra_template_context(self, item) -> dict:
        if self.kind == ContentKind.QUESTION_PAPER:
            return {"year": item.year}
        return {}


NOTE = ContentVariant(
    kind=ContentKind.NOTE,
    model=Note,
    label="Note",
    upload_category="notes",
    create_schema=NoteCreate,
    update_schema=NoteUpdate,
    read_schema=NoteRead,
    preference_attr="new_notes",
    search_fields=("title", "description", "tags"),
    exact_filters=("department", "semester"),
    sort_fields=("created_at", "downloads", "title"),
    social=True,
)

QUESTION_PAPER = ContentVariant(
    kind=ContentKind.QUESTION_PAPER,
    model=QuestionPaper,
    label="Question paper",
    upload_category="questions",
    create_schema=QuestionPaperCreate,
    update_schema=QuestionPaperUpdate,
    read_schema=QuestionPaperRead,
    preference_attr="new_question_papers",
    search_fields=("title", "subject", "tags"),
    exact_filters=("department", "semester", "exam_type", "year"),
    sort_fields=("created_at", "downloads", "title", "year"),
)
