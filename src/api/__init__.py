"""
Immutable Ratings API Package.

Flask blueprints exposing the rating system over HTTP.

Blueprints:
- monitoring: Health probes and metrics
- core: System description, event log, token balances
- mapping: Identity derivation and registration
- ratings: Payment previews and rating creation
- admin: Owner-only ledger controls

Domain errors are rendered as
{"error": <type>, "message": ..., "details": {...}} with an HTTP status
chosen by error category.
"""

import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from api import state
from api.admin import admin_bp
from api.core import core_bp
from api.mapping import mapping_bp
from api.monitoring import monitoring_bp
from api.ratings import ratings_bp
from api.utils import RequestValidationError
from monitoring import get_logger, metrics, setup_request_logging
from ratings_exceptions import (
    AccessControlUnauthorizedAccount,
    AddressNotMapped,
    AlreadyMapped,
    ConfigurationError,
    ContractNotFound,
    ContractPaused,
    InsufficientNativeBalance,
    InvalidPayment,
    OriginNotMapped,
    OwnableUnauthorizedAccount,
    RatingsError,
    TokenError,
    TransferFailed,
)

logger = get_logger(__name__)

# List of all blueprints for registration
# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (monitoring_bp, ''),
    (core_bp, ''),
    (mapping_bp, '/mapping'),
    (ratings_bp, '/ratings'),
    (admin_bp, '/admin'),
]

# Most specific first
ERROR_STATUS = [
    ((OriginNotMapped, AddressNotMapped, ContractNotFound), 404),
    ((AlreadyMapped,), 409),
    ((OwnableUnauthorizedAccount, AccessControlUnauthorizedAccount), 403),
    ((ContractPaused,), 423),
    ((InvalidPayment, TransferFailed, InsufficientNativeBalance, TokenError), 402),
    ((ConfigurationError,), 500),
]


def status_for(error: RatingsError) -> int:
    """HTTP status for a domain error (400 when no category matches)."""
    for error_types, status in ERROR_STATUS:
        if isinstance(error, error_types):
            return status
    return 400


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def register_error_handlers(app):
    """Render errors as JSON."""

    @app.errorhandler(RatingsError)
    def handle_ratings_error(error: RatingsError):
        status = status_for(error)
        metrics.increment("api_errors_total", labels={"error": type(error).__name__})
        log = logger.error if status >= 500 else logger.warning
        log("Request rejected: %s", error, extra={"error": error.to_dict()})
        return jsonify({
            "error": type(error).__name__,
            "message": error.message,
            "details": error.details,
        }), status

    @app.errorhandler(RequestValidationError)
    def handle_validation_error(error: RequestValidationError):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(ValueError)
    def handle_value_error(error: ValueError):
        return jsonify({"error": "Invalid value", "message": str(error)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.name, "message": error.description}), error.code


def create_app(system=None) -> Flask:
    """
    Build the Flask app.

    Args:
        system: RatingsSystem to serve; deployed from RATINGS_* environment
            variables on first request when omitted
    """
    app = Flask(__name__)
    app.json.sort_keys = False

    if system is not None:
        state.set_system(system)

    register_blueprints(app)
    register_error_handlers(app)
    setup_request_logging(app)
    return app


def run_server(host: str | None = None, port: int | None = None, debug: bool = False):
    """Run the Flask development server."""
    host = host or os.getenv("HOST", "127.0.0.1")
    port = port or int(os.getenv("PORT", 5000))

    app = create_app()
    system = state.get_system()

    print(f"\n{'='*60}")
    print("Immutable Ratings API Server")
    print(f"{'='*60}")
    print(f"Listening on: http://{host}:{port}")
    print(f"Chain id: {system.chain.chain_id}")
    print(f"Ratings: {system.ratings.address}")
    print(f"{'='*60}\n")

    app.run(host=host, port=port, debug=debug)
