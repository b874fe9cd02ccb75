from __future__ import annotations

from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from campus_notes.db.session import get_db
from campus_notes.models.enums import ExamType
from campus_notes.routers.content import build_content_router
from campus_notes.schemas.content import QuestionPaperStats
from campus_notes.schemas.envelope import Envelope, ok
from campus_notes.services.content_repository import ContentRepository
from campus_notes.services.content_stats import question_paper_overview
from campus_notes.services.variants import QUESTION_PAPER


def question_paper_filters(
    department: Optional[str] = Query(default=None),
    semester: Optional[int] = Query(default=None, ge=1, le=8),
    exam_type: Optional[ExamType] = Query(default=None),
    year: Optional[int] = Query(default=None, ge=2000),
) -> dict:
    return {"department": department, "semester": semester, "exam_type": exam_type, "year": year}


router = build_content_router(
    QUESTION_PAPER,
    prefix="/api/question-papers",
    tags=["question-papers"],
    filters_dependency=question_paper_filters,
)


@router.get("/filters/years", response_model=Envelope[list[int]])
def list_years(db: Session = Depends(get_db)) -> dict:
    return ok(ContentRepository(db).distinct_years(QUESTION_PAPER))


@router.get("/stats/overview", response_model=Envelope[QuestionPaperStats])
def stats_overview(
    department: Optional[str] = Query(default=None),
    semester: Optional[int] = Query(default=None, ge=1, le=8),
    db: Session = Depends(get_db),
) -> dict:
    return ok(question_paper_overview(db, department=department, semester=semester))
