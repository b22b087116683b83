"""
Monitoring for Immutable Ratings.

This package provides:
- Application metrics collection (counters, gauges, histograms)
- Structured logging with JSON output
- Request timing middleware

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("ratings_created_total", labels={"direction": "up"})

    logger = get_logger(__name__)
    logger.info("Rating created", extra={"origin": "https://www.ratings.wtf"})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import setup_request_logging, timed

__all__ = [
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "LoggingContext",
    "setup_request_logging",
    "timed",
]
