"""Prometheus metrics."""
import time

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

# Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

timers_started_total = Counter(
    "timers_started_total",
    "Task timers started",
)

timers_stopped_total = Counter(
    "timers_stopped_total",
    "Task timers stopped, explicitly or by completing the task",
)

timer_conflicts_total = Counter(
    "timer_conflicts_total",
    "Timer start/stop requests rejected because of the timer state",
    ["reason"],
)

tracked_minutes_total = Counter(
    "tracked_minutes_total",
    "Minutes recorded in closed work sessions",
)

notifications_sent_total = Counter(
    "notifications_sent_total",
    "Notifications handed to the mail gateway",
    ["kind"],
)

notifications_failed_total = Counter(
    "notifications_failed_total",
    "Notifications that could not be delivered",
    ["kind"],
)


def _endpoint(request: Request) -> str:
    # Route template keeps label cardinality bounded (no task ids)
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def setup_metrics(app: FastAPI) -> None:
    """Setup request metrics and the Prometheus metrics endpoint."""

    @app.middleware("http")
    async def record_request(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        endpoint = _endpoint(request)
        http_requests_total.labels(request.method, endpoint, str(response.status_code)).inc()
        http_request_duration_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started)
        return response

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
