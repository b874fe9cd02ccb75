from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from campus_notes.core.deps import shutdown_dispatcher
from campus_notes.core.errors import register_exception_handlers
from campus_notes.core.logging import RequestLoggingMiddleware, configure_logging
from campus_notes.core.observability import PrometheusMiddleware, metrics_endpoint
from campus_notes.core.settings import settings
from campus_notes.db.session import engine
from campus_notes.modules.router_registry import include_all_routers

configure_logging(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    # Drain queued notification fan-outs before the process exits.
    shutdown_dispatcher()


app = FastAPI(title=settings.project_name, version=settings.project_version, lifespan=lifespan)

build_time = os.getenv("BUILD_TIME") or datetime.now(timezone.utc).isoformat()

problems = settings.production_problems()
if problems:
    raise RuntimeError("; ".join(problems))

# Any localhost port is allowed outside production.
allow_origin_regex = None if settings.is_production else r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id", "Accept"],
)

# Observability middleware
app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["observability"], include_in_schema=False)

include_all_routers(app)


@app.get("/healthz", tags=["health"])
def healthcheck() -> dict[str, str]:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("healthcheck_failed", extra={"error": "database"}, exc_info=exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    uploads_dir = settings.ensure_uploads_dir()
    if not os.access(uploads_dir, os.W_OK):
        logger.error("healthcheck_failed", extra={"error": "storage", "path": str(uploads_dir)})
        raise HTTPException(status_code=503, detail="Upload storage is not writable")
    return {"status": "ok", "database": "ok", "storage": "ok"}


@app.get("/version", tags=["health"])
def version() -> dict[str, str]:
    return {
        "app": settings.project_name,
        "version": settings.project_version,
        "git_sha": settings.git_sha or "unknown",
        "build_time": build_time,
        "env": "prod" if settings.is_production else "dev",
    }
