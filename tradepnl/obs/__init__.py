"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware
from .metrics import (
    PNL_GENERATION_COUNTER,
    PNL_GENERATION_LATENCY_SECONDS,
    PNL_LINE_ITEMS_GENERATED,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    PrometheusMiddleware,
    metrics_router,
    record_generation,
)
from .tracing import (
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    start_span,
)

__all__ = [
    "AuditLogRecord",
    "AuditMiddleware",
    "PNL_GENERATION_COUNTER",
    "PNL_GENERATION_LATENCY_SECONDS",
    "PNL_LINE_ITEMS_GENERATED",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "metrics_router",
    "record_generation",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "start_span",
]
