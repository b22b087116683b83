"""
Tests for logging and metrics.

Tests:
- Sensitive data redaction
- JSON and console log formatting with bound context
- Counters, gauges and histograms, JSON and Prometheus export
- Path normalization and the timed decorator
"""

import json
import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from monitoring import LoggingContext, MetricsCollector, configure_logging, timed
from monitoring.logging import (
    ConsoleFormatter,
    JSONFormatter,
    clear_log_context,
    get_log_context,
    redact_sensitive_data,
    redact_string,
    set_log_context,
)
from monitoring.middleware import normalize_path


def make_record(message, level=logging.INFO, **extra):
    record = logging.LogRecord("immutable_ratings.test", level, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


class TestRedaction:
    """Tests for secret redaction."""

    def test_api_key_in_string(self):
        assert "secret-value" not in redact_string("api_key=secret-value")

    def test_bearer_token(self):
        assert redact_string("Authorization: Bearer abc.def") == "Authorization: Bearer [REDACTED]"

    def test_private_key(self):
        assert redact_string("key 0x" + "ab" * 32) == "key [REDACTED_KEY]"

    def test_addresses_untouched(self):
        address = "0x4cAF50D10399FB59c024b9FcC6CCc986bBF56321"
        assert redact_string(f"minted to {address}") == f"minted to {address}"

    def test_redacted_fields(self):
        data = {"X-API-Key": "k", "nested": {"password": "p", "origin": "https://a"}}
        assert redact_sensitive_data(data) == {
            "X-API-Key": "[REDACTED]",
            "nested": {"password": "[REDACTED]", "origin": "https://a"},
        }

    def test_max_depth(self):
        assert redact_sensitive_data({"a": 1}, depth=11) == "[MAX_DEPTH_EXCEEDED]"


class TestLogContext:
    """Tests for per-thread log context."""

    def test_set_and_clear(self):
        set_log_context(request_id="abc")
        assert get_log_context() == {"request_id": "abc"}
        clear_log_context()
        assert get_log_context() == {}

    def test_logging_context_restores_previous(self):
        set_log_context(request_id="outer")
        with LoggingContext(sender="0x1"):
            assert get_log_context() == {"request_id": "outer", "sender": "0x1"}
        assert get_log_context() == {"request_id": "outer"}


class TestFormatters:
    """Tests for log formatters."""

    def test_json_formatter(self):
        set_log_context(request_id="r1")
        line = JSONFormatter().format(make_record("Rating up created", sender="0xabc", amount=5))
        entry = json.loads(line)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "immutable_ratings.test"
        assert entry["message"] == "Rating up created"
        assert entry["context"] == {"request_id": "r1"}
        assert entry["sender"] == "0xabc"
        assert entry["amount"] == 5
        assert "location" not in entry

    def test_json_formatter_warning_location(self):
        entry = json.loads(JSONFormatter().format(make_record("paused", level=logging.WARNING)))
        assert entry["location"]["line"] == 10

    def test_json_formatter_redacts(self):
        entry = json.loads(JSONFormatter().format(make_record("token=hunter2", api_key="k")))
        assert "hunter2" not in entry["message"]
        assert entry["api_key"] == "[REDACTED]"

    def test_console_formatter(self):
        set_log_context(request_id="r1")
        line = ConsoleFormatter().format(make_record("hello", sender="0xabc"))
        assert "hello" in line
        assert "request_id=r1" in line
        assert "sender=0xabc" in line

    def test_configure_logging_json(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging("DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        configure_logging("WARNING", json_output=False)
        assert isinstance(root.handlers[0].formatter, ConsoleFormatter)


class TestMetricsCollector:
    """Tests for the metrics collector."""

    @pytest.fixture
    def collector(self):
        return MetricsCollector(prefix="test")

    def test_counters_by_label(self, collector):
        collector.increment("ratings_created_total", labels={"direction": "up"})
        collector.increment("ratings_created_total", 2, labels={"direction": "up"})
        collector.increment("ratings_created_total", labels={"direction": "down"})
        assert collector.get_counter("ratings_created_total", labels={"direction": "up"}) == 3
        assert collector.get_counter("ratings_created_total", labels={"direction": "down"}) == 1
        assert collector.get_counter("missing") == 0

    def test_gauges(self, collector):
        collector.set_gauge("paused", 1)
        collector.increment_gauge("active")
        collector.increment_gauge("active")
        collector.decrement_gauge("active")
        assert collector.get_gauge("paused") == 1
        assert collector.get_gauge("active") == 1

    def test_histogram(self, collector):
        collector.timing("latency_ms", 3)
        collector.timing("latency_ms", 700)
        histogram = collector.get_all()["histograms"]["latency_ms"]["_total"]
        assert histogram["count"] == 2
        assert histogram["sum"] == 703
        assert histogram["buckets"]["5"] == 1
        assert histogram["buckets"]["1000"] == 2
        assert histogram["buckets"]["+Inf"] == 2

    def test_timer(self, collector):
        with collector.timer("block_ms"):
            pass
        assert collector.get_all()["histograms"]["block_ms"]["_total"]["count"] == 1

    def test_get_all_flattens_unlabeled(self, collector):
        collector.increment("transactions_total")
        collector.increment("requests", labels={"status": "200"})
        counters = collector.get_all()["counters"]
        assert counters["transactions_total"] == 1
        assert counters["requests"] == {'status="200"': 1}

    def test_prometheus(self, collector):
        collector.increment("transactions_total")
        collector.increment("requests", labels={"method": "GET", "status": "200"})
        collector.timing("latency_ms", 2, labels={"path": "/health"})
        text = collector.to_prometheus()
        assert "# TYPE test_transactions_total counter" in text
        assert "test_transactions_total 1" in text
        assert 'test_requests{method="GET",status="200"} 1' in text
        assert 'test_latency_ms_bucket{path="/health",le="5"} 1' in text
        assert 'test_latency_ms_count{path="/health"} 1' in text

    def test_reset(self, collector):
        collector.increment("x")
        collector.reset()
        assert collector.get_all()["counters"] == {}


class TestMiddlewareHelpers:
    """Tests for request metric helpers."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/health", "/health"),
            ("/ratings/users/0x4cAF50D10399FB59c024b9FcC6CCc986bBF56321", "/ratings/users/:address"),
            ("/mapping/identity/0x4caf50d10399fb59c024b9fcc6ccc986bbf56321", "/mapping/identity/:address"),
            ("/", "/"),
        ],
    )
    def test_normalize_path(self, path, expected):
        assert normalize_path(path) == expected

    def test_timed_decorator(self):
        from monitoring import metrics

        @timed("double_ms")
        def double(x):
            return 2 * x

        assert double(4) == 8
        assert metrics.get_all()["histograms"]["double_ms"]["_total"]["count"] == 1

    def test_timed_default_name(self):
        from monitoring import metrics

        @timed()
        def work():
            return None

        work()
        assert "function_work" in metrics.get_all()["histograms"]

    def test_request_metrics(self, flask_client):
        from monitoring import metrics

        flask_client.get("/health/live")
        labels = {"method": "GET", "path": "/health/live", "status": "200"}
        assert metrics.get_counter("http_requests_total", labels=labels) == 1
        assert metrics.get_gauge("http_requests_active") == 0
