"""
Identity mapping blueprint.

Endpoints:
- GET  /mapping/preview?origin=...       derive an identity (no registration needed)
- GET  /mapping?origin=...               registered record of an origin
- POST /mapping                          register an origin
- GET  /mapping/identity/<identity>      registered record of an identity
"""

from flask import Blueprint, jsonify

from api import state
from api.utils import (
    get_json_body,
    parse_address,
    require_api_key,
    require_fields,
    require_query_param,
)

mapping_bp = Blueprint("mapping", __name__)


@mapping_bp.route("/preview", methods=["GET"])
def preview_mapping():
    """
    Derive the identity of an origin.

    Returns:
        The identity and whether the origin is registered
    """
    mapping = state.get_system().mapping
    origin = require_query_param("origin")
    return jsonify({
        "origin": origin,
        "identity": mapping.preview_address(origin),
        "mapped": mapping.is_origin_mapped(origin),
    })


@mapping_bp.route("", methods=["GET"])
def get_mapping():
    """Registered record of an origin (404 when not registered)."""
    mapping = state.get_system().mapping
    return jsonify(mapping.get_mapping(require_query_param("origin")).to_dict())


@mapping_bp.route("", methods=["POST"])
@require_api_key
def create_mapping():
    """
    Register an origin.

    Request body:
    {
        "origin": "https://www.ratings.wtf",
        "sender": "0x...",
        "creator": "0x..." (optional, defaults to sender)
    }

    Returns:
        The new record (201), or 409 if the origin is already registered
    """
    data = get_json_body()
    require_fields(
        data,
        required_fields={"origin": str, "sender": str},
        optional_fields={"creator": str},
    )

    mapping = state.get_system().mapping
    sender = parse_address(data["sender"], "sender")

    if data.get("creator"):
        creator = parse_address(data["creator"], "creator")
        mapping.create_mapping_for(data["origin"], creator, sender=sender)
    else:
        mapping.create_mapping(data["origin"], sender=sender)

    return jsonify(mapping.get_mapping(data["origin"]).to_dict()), 201


@mapping_bp.route("/identity/<identity>", methods=["GET"])
def get_identity(identity: str):
    """Registered record of an identity (404 when not registered)."""
    mapping = state.get_system().mapping
    record_origin = mapping.origin_of(identity)
    return jsonify(mapping.get_mapping(record_origin).to_dict())
