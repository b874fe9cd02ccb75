from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from campus_notes.models.content import Note, QuestionPaper
from campus_notes.models.enums import ContentStatus


def question_paper_overview(db: Session, *, department: Optional[str] = None, semester: Optional[int] = None) -> dict:
    """Totals by exam type, the five most recent years and the ten busiest subjects."""
    filters = [QuestionPaper.status == ContentStatus.APPROVED]
    if department:
        filters.append(QuestionPaper.department == department)
    if semester is not None:
        filters.append(QuestionPaper.semester == semester)

    total = db.query(func.count(QuestionPaper.id)).filter(*filters).scalar() or 0
    by_exam_type = (
        db.query(QuestionPaper.exam_type, func.count(QuestionPaper.id))
        .filter(*filters)
        .group_by(QuestionPaper.exam_type)
        .order_by(func.count(QuestionPaper.id).desc())
        .all()
    )
    by_year = (
        db.query(QuestionPaper.year, func.count(QuestionPaper.id))
        .filter(*filters)
        .group_by(QuestionPaper.year)
        .order_by(QuestionPaper.year.desc())
        .limit(5)
        .all()
    )
    subject_count = func.count(QuestionPaper.id).label("subject_count")
    top_subjects = (
        db.query(QuestionPaper.subject, subject_count)
        .filter(*filters)
        .group_by(QuestionPaper.subject)
        .order_by(subject_count.desc(), QuestionPaper.subject.asc())
        .limit(10)
        .all()
    )
    return {
        "total": total,
        "by_exam_type": [{"exam_type": exam_type, "count": count} for exam_type, count in by_exam_type],
        "by_year": [{"year": year, "count": count} for year, count in by_year],
        "top_subjects": [{"subject": subject, "count": count} for subject, count in top_subjects],
    }


def pending_approvals(db: Session, *, kind: str = "all", page: int = 1, limit: int = 10) -> tuple[list, list, int]:
    """Review queue across both variants. A single kind is paginated; ``all`` shows five of each."""
    notes: list = []
    papers: list = []
    total = 0
    for name, model in (("notes", Note), ("question_papers", QuestionPaper)):
        if kind not in ("all", name):
            continue
        query = db.query(model).filter(model.status == ContentStatus.PENDING).order_by(model.created_at.desc(), model.id.desc())
        if kind == name:
            items = query.offset((page - 1) * limit).limit(limit).all()
            total = query.order_by(None).count()
        else:
            items = query.limit(5).all()
            total += len(items)
        if name == "notes":
            notes = items
        else:
            papers = items
    return notes, papers, total
