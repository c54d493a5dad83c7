from __future__ import annotations

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient
from opentelemetry import trace
from opentelemetry.sdk.trace import ReadableSpan

from tradepnl.obs import (
    PNL_GENERATION_COUNTER,
    PNL_LINE_ITEMS_GENERATED,
    PrometheusMiddleware,
    initialise_tracing,
    metrics_router,
    record_generation,
    start_span,
)


def _sample_value(metric, sample_name: str, **labels: str) -> float:
    family = next(iter(metric.collect()))
    for sample in family.samples:
        if sample.name == sample_name and all(sample.labels.get(key) == value for key, value in labels.items()):
            return sample.value
    return 0.0


def test_metrics_endpoint_exposes_counters() -> None:
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware)
    app.include_router(metrics_router)

    client = TestClient(app)
    client.get("/metrics")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "pnl_report_generations_total" in response.text


def test_record_generation_updates_counters() -> None:
    before = _sample_value(PNL_GENERATION_COUNTER, "pnl_report_generations_total", report_type="channel", outcome="generated")
    items_before = _sample_value(PNL_LINE_ITEMS_GENERATED, "pnl_line_items_generated_total", report_type="channel")

    record_generation("channel", outcome="generated", duration_seconds=0.2, line_items=4)

    after = _sample_value(PNL_GENERATION_COUNTER, "pnl_report_generations_total", report_type="channel", outcome="generated")
    items_after = _sample_value(PNL_LINE_ITEMS_GENERATED, "pnl_line_items_generated_total", report_type="channel")
    assert after == before + 1
    assert items_after == items_before + 4


def test_start_span_sets_attributes_and_skips_none() -> None:
    initialise_tracing(service_name="unit-test-service", instrument_logging=False)

    with start_span("pnl.test", tenant_id="tenant-demo", report_id=None, rows=3) as span:
        assert span.get_span_context().is_valid
        assert trace.get_current_span() is span

    assert isinstance(span, ReadableSpan)
    assert span.name == "pnl.test"
    assert span.attributes["tenant_id"] == "tenant-demo"
    assert span.attributes["rows"] == 3
    assert "report_id" not in span.attributes


def test_audit_log_written_per_tenant(client, auth_headers, audit_s3_client) -> None:
    response = client.post("/api/pnl/", json={"name": "Audited report"}, headers=auth_headers)
    assert response.status_code == 201
    report_id = response.json()["id"]

    client.get(f"/api/pnl/{report_id}", headers=auth_headers)

    bucket = audit_s3_client.buckets["tradepnl-audit-logs"]
    keys = [key for key in bucket if "/tenant-demo/" in key]
    assert len(keys) == 1
    records = [json.loads(line) for line in bucket[keys[0]].decode("utf-8").splitlines()]
    assert records[0]["method"] == "POST"
    assert records[0]["actor"] == "finance@example.com"
    assert records[-1]["report_id"] == report_id
    assert records[-1]["status"] == 200


def test_probe_endpoints_are_not_audited(client, audit_s3_client) -> None:
    response = client.get("/api/healthz")

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers
    assert audit_s3_client.buckets == {}
