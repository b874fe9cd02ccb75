"""
Prometheus instrumentation for the Campus Notes API.

HTTP traffic is labelled by route template. Domain counters track uploads,
moderation decisions and downloads per content kind, and notification
deliveries per event, so fan-out failures are visible without scraping logs.
"""

from __future__ import annotations

import re
import time

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

http_requests_total = Counter(
    "http_server_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

content_submissions_total = Counter(
    "campus_notes_submissions_total",
    "Uploads accepted, by content kind and initial status",
    ["kind", "status"],
)

moderation_decisions_total = Counter(
    "campus_notes_moderation_decisions_total",
    "Approve and reject decisions, by content kind",
    ["kind", "decision"],
)

content_downloads_total = Counter(
    "campus_notes_downloads_total",
    "File downloads served, by content kind",
    ["kind"],
)

notifications_sent_total = Counter(
    "campus_notes_notifications_sent_total",
    "Notification messages delivered",
    ["event"],
)

notifications_failed_total = Counter(
    "campus_notes_notifications_failed_total",
    "Notification messages that failed to deliver",
    ["event"],
)

notification_fanouts_pending = Gauge(
    "campus_notes_notification_fanouts_pending",
    "Fan-out jobs queued or running",
)

_ID_SEGMENT = re.compile(r"/\d+")


def normalize_path(path: str) -> str:
    """Fallback label for requests that matched no route: numeric ids collapsed."""
    return "/".join(_ID_SEGMENT.sub("/{id}", path).split("/")[:6])


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or normalize_path(request.url.path)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            # Routing fills scope["route"], so the label is read after the call.
            path = _route_label(request)
            http_requests_total.labels(method=request.method, path=path, status=status).inc()
            http_request_duration_seconds.labels(method=request.method, path=path).observe(
                time.perf_counter() - start_time
            )


async def metrics_endpoint(request: Request) -> Response:
    return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
