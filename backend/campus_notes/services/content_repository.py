from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from campus_notes.db.functions import folded_contains, json_array_folded_contains
from campus_notes.models.engagement import ENGAGEMENT_MODELS
from campus_notes.models.enums import ContentStatus, SortOrder
from campus_notes.services.variants import ContentVariant

T = TypeVar("T")

MAX_PAGE_SIZE = 50


@dataclass
class ContentQuery:
    page: int = 1
    limit: int = 10
    filters: dict[str, Any] = field(default_factory=dict)
    subject: Optional[str] = None
    search: Optional[str] = None
    status: Optional[ContentStatus] = None
    uploaded_by_user_id: Optional[int] = None
    sort_by: Optional[str] = None
    sort_order: SortOrder = SortOrder.DESC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class ContentRepository:
    """Persistence for notes and question papers. Flushes, never commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, variant: ContentVariant, **fields: Any):
        item = variant.model(**fields)
        self.db.add(item)
        self.db.flush()
        return item

    def get(self, variant: ContentVariant, item_id: int):
        return self.db.get(variant.model, item_id)

    def _search_clause(self, variant: ContentVariant, term: str):
        model = variant.model
        dialect = self.db.get_bind().dialect.name
        clauses = []
        for name in variant.search_fields:
            column = getattr(model, name)
            if name == "tags":
                clauses.append(json_array_folded_contains(column, term, dialect=dialect, correlate_to=model))
            else:
                clauses.append(folded_contains(column, term))
        return or_(*clauses)

    def find(self, variant: ContentVariant, query: ContentQuery) -> Page:
        model = variant.model
        stmt = self.db.query(model)

        for name, value in query.filters.items():
            if value is None or name not in variant.exact_filters:
                continue
            stmt = stmt.filter(getattr(model, name) == value)
        if query.subject:
            stmt = stmt.filter(folded_contains(model.subject, query.subject))
        if query.status is not None:
            stmt = stmt.filter(model.status == query.status)
        if query.uploaded_by_user_id is not None:
            stmt = stmt.filter(model.uploaded_by_user_id == query.uploaded_by_user_id)
        if query.search:
            stmt = stmt.filter(self._search_clause(variant, query.search))

        total = stmt.order_by(None).count()

        sort_name = query.sort_by if query.sort_by in variant.sort_fields else variant.default_sort
        sort_column = getattr(model, sort_name)
        ordering = sort_column.asc() if query.sort_order == SortOrder.ASC else sort_column.desc()
        items = stmt.order_by(ordering, model.id.desc()).offset(query.offset).limit(query.limit).all()
        return Page(items=items, total=total, page=query.page, limit=query.limit)

    def update(self, item, **changes: Any):
        for key, value in changes.items():
            setattr(item, key, value)
        self.db.add(item)
        self.db.flush()
        return item

    def delete(self, variant: ContentVariant, item) -> None:
        for engagement_model in ENGAGEMENT_MODELS:
            (
                self.db.query(engagement_model)
                .filter(
                    engagement_model.content_kind == variant.kind,
                    engagement_model.content_id == item.id,
                )
                .delete(synchronize_session=False)
            )
        self.db.delete(item)
        self.db.flush()

    def increment_downloads(self, variant: ContentVariant, item_id: int) -> int:
        model = variant.model
        self.db.execute(
            update(model)
            .where(model.id == item_id)
            .values(downloads=model.downloads + 1)
        )
        return self.db.query(model.downloads).filter(model.id == item_id).scalar() or 0

    def distinct_years(self, variant: ContentVariant) -> list[int]:
        model = variant.model
        rows = (
            self.db.query(model.year)
            .filter(model.status == ContentStatus.APPROVED)
            .distinct()
            .order_by(model.year.desc())
            .all()
        )
        return [row[0] for row in rows]
