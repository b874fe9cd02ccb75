"""Uniform response envelope shared by every endpoint."""

from __future__ import annotations

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class FieldErrorOut(BaseModel):
    field: str
    message: str


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current: int
    pages: int
    total: int
    has_next: bool = Field(serialization_alias="hasNext")
    has_prev: bool = Field(serialization_alias="hasPrev")

    @classmethod
    def from_page(cls, page) -> "Pagination":
        return cls(
            current=page.page,
            pages=page.pages,
            total=page.total,
            has_next=page.has_next,
            has_prev=page.has_prev,
        )


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class ListEnvelope(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: List[T] = Field(default_factory=list)
    pagination: Pagination


def ok(data=None, message: Optional[str] = None) -> dict:
    return {"success": True, "message": message, "data": data}


def paginated(items: list, page) -> dict:
    return {"success": True, "data": items, "pagination": Pagination.from_page(page)}
