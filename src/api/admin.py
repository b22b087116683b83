"""
Administration blueprint.

Owner-only controls of the rating ledger. The ledger itself enforces
ownership; these endpoints only parse requests and report the resulting
configuration.

Endpoints (all POST, all take "sender"):
- /admin/receiver              {"receiver"}
- /admin/payment-token         {"payment_token"} (zero address = native)
- /admin/rating-price          {"rating_price"}
- /admin/pause                 {"is_paused"}
- /admin/recover               {"token", "to"}
- /admin/ownership/transfer    {"new_owner"}
- /admin/ownership/accept
- /admin/ownership/renounce
"""

from flask import Blueprint, jsonify

from api import state
from api.utils import get_json_body, parse_address, parse_amount, require_api_key, require_fields
from monitoring import get_logger

logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__)


def _request(required_fields: dict | None = None) -> tuple[dict, str]:
    data = get_json_body()
    require_fields(data, {"sender": str, **(required_fields or {})})
    return data, parse_address(data["sender"], "sender")


def _config_response():
    return jsonify(state.get_system().ratings.get_config())


@admin_bp.route("/receiver", methods=["POST"])
@require_api_key
def set_receiver():
    data, sender = _request({"receiver": str})
    state.get_system().ratings.set_receiver(parse_address(data["receiver"], "receiver"), sender=sender)
    return _config_response()


@admin_bp.route("/payment-token", methods=["POST"])
@require_api_key
def set_payment_token():
    data, sender = _request({"payment_token": str})
    state.get_system().ratings.set_payment_token(parse_address(data["payment_token"], "payment_token"), sender=sender)
    return _config_response()


@admin_bp.route("/rating-price", methods=["POST"])
@require_api_key
def set_rating_price():
    data, sender = _request({"rating_price": (int, str)})
    state.get_system().ratings.set_rating_price(parse_amount(data["rating_price"], "rating_price"), sender=sender)
    return _config_response()


@admin_bp.route("/pause", methods=["POST"])
@require_api_key
def set_is_paused():
    """Pause or unpause rating creation ({"is_paused": true|false})."""
    data, sender = _request({"is_paused": bool})
    state.get_system().ratings.set_is_paused(data["is_paused"], sender=sender)
    return _config_response()


@admin_bp.route("/recover", methods=["POST"])
@require_api_key
def recover_erc20():
    """
    Move the ledger's whole balance of a token to an address.

    Returns:
        The token, destination and amount recovered
    """
    data, sender = _request({"token": str, "to": str})
    token = parse_address(data["token"], "token")
    to = parse_address(data["to"], "to")
    amount = state.get_system().ratings.recover_erc20(token, to, sender=sender)
    return jsonify({"token": token, "to": to, "amount": amount})


@admin_bp.route("/ownership/transfer", methods=["POST"])
@require_api_key
def transfer_ownership():
    """Start a two-step ownership transfer."""
    data, sender = _request({"new_owner": str})
    state.get_system().ratings.transfer_ownership(parse_address(data["new_owner"], "new_owner"), sender=sender)
    return _config_response()


@admin_bp.route("/ownership/accept", methods=["POST"])
@require_api_key
def accept_ownership():
    _, sender = _request()
    state.get_system().ratings.accept_ownership(sender=sender)
    return _config_response()


@admin_bp.route("/ownership/renounce", methods=["POST"])
@require_api_key
def renounce_ownership():
    _, sender = _request()
    state.get_system().ratings.renounce_ownership(sender=sender)
    logger.warning("Ownership renounced", extra={"previous_owner": sender})
    return _config_response()
