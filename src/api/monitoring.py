"""
Monitoring API endpoints.

This blueprint provides:
- /health: Basic health check
- /health/live: Liveness probe
- /health/ready: Readiness probe
- /metrics: Prometheus-compatible metrics
- /metrics/json: JSON format metrics
"""

import time

from flask import Blueprint, Response, jsonify

from api import state
from immutable_ratings import VERSION
from monitoring import metrics

monitoring_bp = Blueprint('monitoring', __name__)

_startup_time = time.time()


def _update_dynamic_metrics() -> None:
    system = state.get_system()
    metrics.set_gauge("mappings", system.mapping.mapping_count)
    metrics.set_gauge("events", len(system.chain.events))
    metrics.set_gauge("paused", 1 if system.ratings.is_paused else 0)
    metrics.set_gauge("token_supply", system.token_up.total_supply, labels={"token": "TUP"})
    metrics.set_gauge("token_supply", system.token_down.total_supply, labels={"token": "TDN"})


@monitoring_bp.route('/metrics', methods=['GET'])
def prometheus_metrics():
    """Metrics in Prometheus text exposition format."""
    _update_dynamic_metrics()
    return Response(metrics.to_prometheus(), mimetype='text/plain; charset=utf-8')


@monitoring_bp.route('/metrics/json', methods=['GET'])
def json_metrics():
    _update_dynamic_metrics()
    return jsonify(metrics.get_all())


@monitoring_bp.route('/health', methods=['GET'])
def health():
    """
    Basic health check endpoint.

    Returns service status and key statistics.
    """
    system = state.get_system()
    return jsonify({
        "status": "healthy",
        "service": "Immutable Ratings API",
        "version": VERSION,
        "uptime_seconds": time.time() - _startup_time,
        "chain_id": system.chain.chain_id,
        "checks": {
            "ratings": {
                "status": "paused" if system.ratings.is_paused else "ok",
                "address": system.ratings.address,
            },
            "mapping": {
                "status": "ok",
                "mappings": system.mapping.mapping_count,
            },
            "swap_router": {
                "status": "ok" if system.swap_router else "external",
                "address": system.ratings.swap_router,
            },
        },
    })


@monitoring_bp.route('/health/live', methods=['GET'])
def liveness():
    """Returns 200 while the process is running."""
    return jsonify({"status": "alive"})


@monitoring_bp.route('/health/ready', methods=['GET'])
def readiness():
    """
    Readiness probe.

    Not ready while the rating system cannot be loaded.
    """
    try:
        state.get_system()
    except Exception as e:
        return jsonify({"status": "not_ready", "issues": [f"system: {e}"]}), 503
    return jsonify({"status": "ready"})
