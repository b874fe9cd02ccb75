from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from campus_notes.core.security import InvalidTokenError, user_id_from_token

# Extras copied onto the JSON line when a log call passes them.
STRUCTURED_KEYS = (
    "request_id",
    "user_id",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "event",
    "content_kind",
    "content_id",
    "recipient",
    "recipients",
    "storage_key",
    "sent",
    "failed",
    "error",
)

# Health-check and scrape endpoints get no per-request line.
QUIET_PATHS = frozenset({"/metrics", "/healthz"})


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({key: getattr(record, key) for key in STRUCTURED_KEYS if hasattr(record, key)})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
    # RequestLoggingMiddleware writes the access line.
    logging.getLogger("uvicorn.access").disabled = True


def _bearer_user_id(request: Request) -> Optional[int]:
    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    try:
        return user_id_from_token(token.strip())
    except InvalidTokenError:
        return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``request`` line per call, tagged with a propagated ``X-Request-Id``.

    Denied calls are repeated on the ``security`` logger so that 401 and 403
    traffic can be followed without the full request stream.
    """

    def __init__(self, app, logger_name: str = "request") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)
        self.security_logger = logging.getLogger("security")

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        context = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "user_id": _bearer_user_id(request),
        }
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            context["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
            self.logger.exception("unhandled_exception", extra=context)
            raise

        context["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        context["status_code"] = response.status_code
        if request.url.path not in QUIET_PATHS:
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            self.logger.log(level, "request", extra=context)
        if response.status_code in (401, 403):
            event = "unauthorized" if response.status_code == 401 else "forbidden"
            self.security_logger.info(event, extra=context)

        response.headers["X-Request-Id"] = request_id
        return response
