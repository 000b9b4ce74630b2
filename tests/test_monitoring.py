"""Tests for monitoring: health checks, request timing and structured logging."""

import json
import logging
import threading

from flask import g

from qaboard.middleware.logging_config import JSONFormatter, RequestContextFilter
from qaboard.services.report_service import _worker_context


def _record(msg="hello", **extra):
    record = logging.LogRecord("qaboard.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ── Health Endpoints ────────────────────────────────────────────────────


class TestHealthEndpoints:
    """Health check endpoint tests."""

    def test_health_ready(self, client):
        """GET /api/v1/health/ready returns 200."""
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_health_live(self, client):
        """GET /api/v1/health/live returns database and catalog checks."""
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "ok"
        assert "latency_ms" in data["checks"]["database"]
        assert data["checks"]["report_catalog"]["report_types"] == [
            "cross-project-repository-stats",
            "cross-project-test-execution",
            "repository-stats",
            "test-execution",
        ]


# ── Request Timing ──────────────────────────────────────────────────────


class TestRequestTiming:
    """Request timing middleware tests."""

    def test_duration_header_present(self, client):
        """Every response should have X-Request-Duration-Ms header."""
        res = client.get("/api/v1/report-builder/types")
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_request_id_header(self, client):
        res = client.get("/api/v1/report-builder/types")
        assert len(res.headers["X-Request-ID"]) > 0

    def test_custom_request_id_passthrough(self, client):
        """Client-provided X-Request-ID should be preserved."""
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "test-123"})
        assert res.headers["X-Request-ID"] == "test-123"

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nowhere"


# ── Logging ─────────────────────────────────────────────────────────────


class TestLogging:
    """Structured logging tests."""

    def test_json_formatter_includes_report_fields(self):
        line = JSONFormatter().format(_record(report_type="test-execution", row_count=3))
        entry = json.loads(line)
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["report_type"] == "test-execution"
        assert entry["row_count"] == 3
        assert "project_id" not in entry

    def test_filter_attaches_request_id(self, app):
        record = _record()
        with app.test_request_context():
            g.request_id = "abc123"
            assert RequestContextFilter().filter(record) is True
        assert record.request_id == "abc123"

    def test_filter_keeps_explicit_request_id(self, app):
        record = _record(request_id="given")
        with app.test_request_context():
            g.request_id = "abc123"
            RequestContextFilter().filter(record)
        assert record.request_id == "given"

    def test_filter_without_request_id(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert getattr(record, "request_id", None) is None


# ── Report worker context ───────────────────────────────────────────────


class TestWorkerContext:

    def test_worker_thread_sees_request_id(self, app):
        seen = {}
        with app.test_request_context():
            g.request_id = "req-42"
            context = _worker_context()

        def work():
            with context():
                seen["request_id"] = g.request_id

        thread = threading.Thread(target=work)
        thread.start()
        thread.join()
        assert seen == {"request_id": "req-42"}
