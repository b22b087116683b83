"""
Flask middleware for request logging and metrics.

Provides:
- Request ID tracking (X-Request-ID in and out)
- Request timing into the http_request_duration_ms histogram
- One structured log line per request
"""

import re
import time
import uuid
from collections.abc import Callable
from functools import wraps

from flask import Flask, Response, g, request

from monitoring.logging import clear_log_context, get_logger, set_log_context
from monitoring.metrics import metrics

logger = get_logger("immutable_ratings.request")

_ADDRESS_SEGMENT = re.compile(r"^0x[0-9a-fA-F]{40}$")


def setup_request_logging(app: Flask) -> None:
    """
    Install request logging and metrics hooks on a Flask app.

    Args:
        app: Flask application instance
    """

    @app.before_request
    def before_request():
        g.request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        g.start_time = time.perf_counter()
        set_log_context(request_id=g.request_id, method=request.method, path=request.path)
        metrics.increment_gauge("http_requests_active")

    @app.after_request
    def after_request(response: Response) -> Response:
        _record_request(response.status_code)
        if hasattr(g, "request_id"):
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def teardown_request(exception=None):
        clear_log_context()
        metrics.decrement_gauge("http_requests_active")
        if exception:
            logger.error(
                "Request failed with exception",
                exc_info=exception,
                extra={"request_id": getattr(g, "request_id", "unknown"), "path": request.path},
            )


def _record_request(status_code: int) -> None:
    duration_ms = 0.0
    if hasattr(g, "start_time"):
        duration_ms = (time.perf_counter() - g.start_time) * 1000

    path = normalize_path(request.path)
    metrics.increment(
        "http_requests_total",
        labels={"method": request.method, "path": path, "status": str(status_code)},
    )
    metrics.timing("http_request_duration_ms", duration_ms, labels={"method": request.method, "path": path})

    level = "info"
    if status_code >= 500:
        level = "error"
    elif status_code >= 400:
        level = "warning"

    getattr(logger, level)(
        f"{request.method} {request.path} -> {status_code}",
        extra={"status_code": status_code, "duration_ms": round(duration_ms, 2)},
    )


def normalize_path(path: str) -> str:
    """
    Normalize a path for metric labels.

    Address segments become ``:address`` so per-user and per-identity
    lookups share one series.
    """
    parts = [":address" if _ADDRESS_SEGMENT.match(part) else part for part in path.strip("/").split("/")]
    return "/" + "/".join(parts)


def timed(metric_name: str | None = None):
    """
    Decorator for timing function execution.

    Usage:
        @timed("deploy_ratings_system")
        def deploy():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            with metrics.timer(metric_name or f"function_{func.__name__}"):
                return func(*args, **kwargs)

        return wrapper

    return decorator
