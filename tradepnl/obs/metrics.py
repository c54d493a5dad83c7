"""Prometheus metrics for the HTTP API and the P&L engine."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
PNL_GENERATION_COUNTER = Counter(
    "pnl_report_generations_total",
    "P&L report generation attempts by outcome.",
    labelnames=("report_type", "outcome"),
)
PNL_GENERATION_LATENCY_SECONDS = Histogram(
    "pnl_report_generation_seconds",
    "Wall-clock duration of P&L report generation runs.",
    labelnames=("report_type",),
)
PNL_LINE_ITEMS_GENERATED = Counter(
    "pnl_line_items_generated_total",
    "Line items written by successful P&L report generations.",
    labelnames=("report_type",),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(
                    method=method, path=_route_template(request), status=status
                ).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, path=_route_template(request), status="500").inc()
            raise
        finally:
            path = _route_template(request)
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


def _route_template(request: Request) -> str:
    # Report ids would otherwise give every report its own label set.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def record_generation(report_type: str, *, outcome: str, duration_seconds: float, line_items: int = 0) -> None:
    """Record one finished P&L generation run."""
    PNL_GENERATION_COUNTER.labels(report_type=report_type, outcome=outcome).inc()
    PNL_GENERATION_LATENCY_SECONDS.labels(report_type=report_type).observe(max(0.0, duration_seconds))
    if line_items:
        PNL_LINE_ITEMS_GENERATED.labels(report_type=report_type).inc(line_items)


__all__ = [
    "PNL_GENERATION_COUNTER",
    "PNL_GENERATION_LATENCY_SECONDS",
    "PNL_LINE_ITEMS_GENERATED",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "metrics_endpoint",
    "metrics_router",
    "record_generation",
]
