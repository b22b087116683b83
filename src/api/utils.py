"""
Shared utilities for the Immutable Ratings API.

Authentication, request validation and parsing helpers used across all
blueprints.
"""

import os
import secrets
from functools import wraps
from typing import Any

from flask import jsonify, request

from addresses import is_address, normalize_address

# ============================================================
# Security Configuration
# ============================================================

API_KEY = os.getenv("RATINGS_API_KEY", None)
# Default to requiring authentication on mutating endpoints
API_KEY_REQUIRED = os.getenv("RATINGS_REQUIRE_AUTH", "true").lower() == "true"

# Bounded parameters
MAX_RESULTS = 100
MAX_OFFSET = 100000
DEFAULT_PAGE_LIMIT = 50

# Upper bounds on request fields
MAX_DATA_BYTES = 4096
MAX_PATH_BYTES = 20 + 23 * 8


class RequestValidationError(ValueError):
    """A request parameter is missing or malformed (HTTP 400)."""


# ============================================================
# Validation Utilities
# ============================================================

def validate_pagination_params(
    limit: int,
    offset: int = 0,
    max_limit: int = MAX_RESULTS,
    max_offset: int = MAX_OFFSET
) -> tuple:
    """
    Bound pagination parameters.

    Returns:
        Tuple of (bounded_limit, bounded_offset)
    """
    bounded_limit = max(1, min(int(limit) if limit else max_limit, max_limit))
    bounded_offset = max(0, min(int(offset) if offset else 0, max_offset))
    return bounded_limit, bounded_offset


def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type | tuple],
    optional_fields: dict[str, type | tuple] | None = None,
) -> tuple:
    """
    Validate a JSON payload against a simple schema.

    Args:
        data: The JSON data to validate
        required_fields: Field names mapped to expected types
        optional_fields: Optional field names mapped to expected types

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not _is_type(data[field_name], expected_type):
            return False, f"Field '{field_name}' must be of type {_type_name(expected_type)}"

    if optional_fields:
        for field_name, expected_type in optional_fields.items():
            if field_name in data and data[field_name] is not None:
                if not _is_type(data[field_name], expected_type):
                    return False, f"Field '{field_name}' must be of type {_type_name(expected_type)}"

    return True, None


def _is_type(value: Any, expected: type | tuple) -> bool:
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and bool not in (expected if isinstance(expected, tuple) else (expected,)):
        return False
    return isinstance(value, expected)


def _type_name(expected: type | tuple) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


# ============================================================
# Parsing Helpers
# ============================================================

def parse_address(value: Any, field_name: str) -> str:
    """Parse a hex address field into checksummed form."""
    if not isinstance(value, str) or not is_address(value):
        raise RequestValidationError(f"Field '{field_name}' must be a 0x-prefixed 20-byte hex address")
    return normalize_address(value)


def parse_amount(value: Any, field_name: str) -> int:
    """
    Parse a non-negative integer amount in base units.

    Accepts JSON integers or decimal strings (for values beyond 2**53).
    """
    if isinstance(value, bool):
        raise RequestValidationError(f"Field '{field_name}' must be an integer")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip().isdigit():
        amount = int(value.strip())
    else:
        raise RequestValidationError(f"Field '{field_name}' must be an integer or a decimal string")
    if amount < 0:
        raise RequestValidationError(f"Field '{field_name}' must be non-negative")
    return amount


def parse_hex_bytes(value: Any, field_name: str, max_bytes: int = MAX_DATA_BYTES) -> bytes:
    """Parse an optional 0x-prefixed hex string into bytes."""
    if value is None or value == "":
        return b""
    if not isinstance(value, str):
        raise RequestValidationError(f"Field '{field_name}' must be a hex string")
    raw = value[2:] if value.startswith("0x") else value
    try:
        decoded = bytes.fromhex(raw)
    except ValueError:
        raise RequestValidationError(f"Field '{field_name}' is not valid hex") from None
    if len(decoded) > max_bytes:
        raise RequestValidationError(f"Field '{field_name}' exceeds {max_bytes} bytes")
    return decoded


def get_json_body() -> dict[str, Any]:
    """Return the request's JSON object or raise RequestValidationError."""
    data = request.get_json(silent=True)
    if not data:
        raise RequestValidationError("No data provided")
    if not isinstance(data, dict):
        raise RequestValidationError("Request body must be a JSON object")
    return data


def require_fields(
    data: dict[str, Any],
    required_fields: dict[str, type | tuple],
    optional_fields: dict[str, type | tuple] | None = None,
) -> None:
    """validate_json_schema, raising RequestValidationError on failure."""
    is_valid, error_msg = validate_json_schema(data, required_fields, optional_fields)
    if not is_valid:
        raise RequestValidationError(error_msg)


def require_query_param(name: str) -> str:
    value = request.args.get(name)
    if not value:
        raise RequestValidationError(f"Missing required query parameter: {name}")
    return value


# ============================================================
# Authentication Decorator
# ============================================================

def require_api_key(f):
    """Decorator to require API key authentication."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not API_KEY_REQUIRED:
            return f(*args, **kwargs)

        provided_key = request.headers.get('X-API-Key')

        if not provided_key:
            return jsonify({
                "error": "API key required",
                "hint": "Provide API key in X-API-Key header"
            }), 401

        if not API_KEY:
            return jsonify({
                "error": "Server API key not configured",
                "hint": "Set RATINGS_API_KEY environment variable"
            }), 503

        if not secrets.compare_digest(provided_key, API_KEY):
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)
    return decorated_function
