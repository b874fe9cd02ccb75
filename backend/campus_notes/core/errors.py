from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class ServiceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Iterable[FieldError] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [FieldError(field=field, message=message)])

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "ValidationError":
        errors = [
            FieldError(field=_field_name(err.get("loc", ())), message=err.get("msg", "Invalid value"))
            for err in exc.errors()
        ]
        return cls("Validation failed", errors)


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class ConflictError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request conflicts with current state"


class DependencyError(ServiceError):
    """A collaborator (database or file store) failed; details stay in the logs."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server error"


class NotificationError(RuntimeError):
    """Delivery to a single recipient failed. Never leaves the fan-out."""


def error_envelope(message: str, errors: Optional[list[dict[str, str]]] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _field_name(loc: Iterable[Any]) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "form", "header")]
    return ".".join(parts) or "request"


async def _handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    errors = [err.as_dict() for err in getattr(exc, "errors", [])]
    if isinstance(exc, DependencyError):
        logger.error(
            "dependency_failure",
            extra={"path": request.url.path, "method": request.method},
            exc_info=exc,
        )
    return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message, errors))


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(message),
        headers=getattr(exc, "headers", None),
    )


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(error_envelope("Validation failed", errors)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _handle_service_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
