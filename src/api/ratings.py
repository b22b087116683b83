"""
Ratings blueprint.

Endpoints:
- GET  /ratings/config                   ledger configuration
- GET  /ratings/preview-payment?amount=  payment for a rating amount
- POST /ratings/up, /ratings/down        pay and mint a rating
- POST /ratings/up/swap, /ratings/down/swap
                                         mint a rating funded by a swap
- GET  /ratings/users/<address>          lifetime amount rated by a user
- GET  /ratings/balances?origin=...      up/down balances of an origin's identity
- GET  /ratings/preview-swap             input quote for a single-hop swap

Amounts are integers in base units and may be sent as decimal strings.
"""

from typing import Any

from flask import Blueprint, jsonify, request

from addresses import is_zero_address
from api import state
from api.utils import (
    MAX_PATH_BYTES,
    RequestValidationError,
    get_json_body,
    parse_address,
    parse_amount,
    parse_hex_bytes,
    require_api_key,
    require_fields,
    require_query_param,
)
from deployment import format_units
from immutable_ratings import RATING_UNIT, RatingDirection, SwapParamsMultihop, SwapParamsSingle
from monitoring import LoggingContext

ratings_bp = Blueprint("ratings", __name__)

RATING_FIELDS = {"origin": str, "amount": (int, str), "sender": str}
RATING_OPTIONAL_FIELDS = {"value": (int, str), "data": str}


def _payment_decimals() -> int | None:
    """Decimals of the settlement currency, when known."""
    system = state.get_system()
    if system.ratings.is_native_payment:
        return 18
    if system.chain.is_contract(system.ratings.payment_token):
        return getattr(system.chain.contract_at(system.ratings.payment_token), "decimals", None)
    return None


def _rating_response(direction: RatingDirection, origin: str, identity: str, amount: int, sender: str) -> dict[str, Any]:
    system = state.get_system()
    ledger = system.token_up if direction is RatingDirection.UP else system.token_down
    return {
        "direction": direction.value,
        "origin": origin,
        "identity": identity,
        "amount": amount,
        "payment": system.ratings.preview_payment(amount),
        "sender": sender,
        "balance": ledger.balance_of(identity),
        "user_ratings": system.ratings.get_user_ratings(sender),
    }


def _parse_rating_request() -> tuple[dict[str, Any], str, int, str, int, bytes]:
    data = get_json_body()
    require_fields(
        data,
        required_fields=RATING_FIELDS,
        optional_fields={**RATING_OPTIONAL_FIELDS, "swap": dict},
    )
    return (
        data,
        data["origin"],
        parse_amount(data["amount"], "amount"),
        parse_address(data["sender"], "sender"),
        parse_amount(data.get("value", 0), "value"),
        parse_hex_bytes(data.get("data"), "data"),
    )


def _parse_swap_params(raw: Any) -> SwapParamsSingle | SwapParamsMultihop:
    """
    Parse swap funding parameters.

    Single hop:  {"token": "0x...", "fee": 10000, "amount_in_maximum": "..."}
    Multi hop:   {"token": "0x...", "path": "0x...", "amount_in_maximum": "..."}

    The zero address as token means native currency (sent as "value").
    """
    if not isinstance(raw, dict):
        raise RequestValidationError("Field 'swap' is required and must be an object")
    require_fields(
        raw,
        required_fields={"token": str, "amount_in_maximum": (int, str)},
        optional_fields={"fee": int, "path": str},
    )

    token = parse_address(raw["token"], "swap.token")
    amount_in_maximum = parse_amount(raw["amount_in_maximum"], "swap.amount_in_maximum")

    if raw.get("path"):
        path = parse_hex_bytes(raw["path"], "swap.path", max_bytes=MAX_PATH_BYTES)
        return SwapParamsMultihop(token=token, path=path, amount_in_maximum=amount_in_maximum)
    if raw.get("fee") is None:
        raise RequestValidationError("Field 'swap' needs either 'fee' or 'path'")
    return SwapParamsSingle(token=token, fee=raw["fee"], amount_in_maximum=amount_in_maximum)


# ============================================================
# Queries
# ============================================================

@ratings_bp.route("/config", methods=["GET"])
def get_config():
    """Ledger configuration, including owner and pause state."""
    system = state.get_system()
    return jsonify({
        **system.ratings.get_config(),
        "rating_unit": RATING_UNIT,
        "native_payment": system.ratings.is_native_payment,
        "payment_decimals": _payment_decimals(),
    })


@ratings_bp.route("/preview-payment", methods=["GET"])
def preview_payment():
    """
    Payment required for a rating amount.

    Query params:
        amount: Rating amount in base units (1 rating = 10**18)
    """
    system = state.get_system()
    amount = parse_amount(require_query_param("amount"), "amount")
    payment = system.ratings.preview_payment(amount)
    decimals = _payment_decimals()

    return jsonify({
        "amount": amount,
        "payment": payment,
        "payment_token": system.ratings.payment_token,
        "formatted": format_units(payment, decimals) if decimals is not None else None,
    })


@ratings_bp.route("/users/<address>", methods=["GET"])
def get_user_ratings(address: str):
    """Lifetime amount rated by a user, up and down combined."""
    user = parse_address(address, "address")
    return jsonify({"user": user, "ratings": state.get_system().ratings.get_user_ratings(user)})


@ratings_bp.route("/balances", methods=["GET"])
def get_balances():
    """
    Up and down balances held by an origin's identity.

    Query params:
        origin: Origin whose identity to look up
    """
    system = state.get_system()
    origin = require_query_param("origin")
    identity = system.mapping.preview_address(origin)
    return jsonify({
        "origin": origin,
        "identity": identity,
        "up": system.token_up.balance_of(identity),
        "down": system.token_down.balance_of(identity),
    })


# ============================================================
# Rating Creation
# ============================================================

def _create(direction: RatingDirection):
    _, origin, amount, sender, value, data = _parse_rating_request()
    ratings = state.get_system().ratings
    create = ratings.create_up_rating if direction is RatingDirection.UP else ratings.create_down_rating

    with LoggingContext(sender=sender, direction=direction.value):
        identity = create(origin, amount, data, sender=sender, value=value)

    return jsonify(_rating_response(direction, origin, identity, amount, sender)), 201


def _create_with_swap(direction: RatingDirection):
    body, origin, amount, sender, value, data = _parse_rating_request()
    swap_params = _parse_swap_params(body.get("swap"))
    ratings = state.get_system().ratings
    create = ratings.create_up_rating_swap if direction is RatingDirection.UP else ratings.create_down_rating_swap

    with LoggingContext(sender=sender, direction=direction.value, swap=type(swap_params).__name__):
        identity = create(origin, amount, swap_params, data, sender=sender, value=value)

    return jsonify(_rating_response(direction, origin, identity, amount, sender)), 201


@ratings_bp.route("/up", methods=["POST"])
@require_api_key
def create_up_rating():
    """
    Pay for and mint an up rating.

    Request body:
    {
        "origin": "https://www.ratings.wtf",
        "amount": "1000000000000000000000",
        "sender": "0x...",
        "value": 0 (optional, native payment only),
        "data": "0x..." (optional)
    }
    """
    return _create(RatingDirection.UP)


@ratings_bp.route("/down", methods=["POST"])
@require_api_key
def create_down_rating():
    """Pay for and mint a down rating (same body as /ratings/up)."""
    return _create(RatingDirection.DOWN)


@ratings_bp.route("/up/swap", methods=["POST"])
@require_api_key
def create_up_rating_swap():
    """
    Mint an up rating funded by a swap.

    Request body: as /ratings/up plus
    {
        "swap": {"token": "0x...", "fee": 10000, "amount_in_maximum": "..."}
    }
    or with "path" (hex, payment token first) instead of "fee".
    """
    return _create_with_swap(RatingDirection.UP)


@ratings_bp.route("/down/swap", methods=["POST"])
@require_api_key
def create_down_rating_swap():
    return _create_with_swap(RatingDirection.DOWN)


@ratings_bp.route("/preview-swap", methods=["GET"])
def preview_swap():
    """
    Quote the input needed to fund a rating with a single-hop swap.

    Query params:
        amount: Rating amount in base units
        token: Input token
        fee: Pool fee tier
    """
    system = state.get_system()
    if system.swap_router is None:
        raise RequestValidationError("Swap quotes need an in-process swap router")

    amount = parse_amount(require_query_param("amount"), "amount")
    token = parse_address(require_query_param("token"), "token")
    fee = parse_amount(request.args.get("fee", "10000"), "fee")

    router = system.swap_router
    token_out = router.weth9 if system.ratings.is_native_payment else system.ratings.payment_token
    token_in = router.weth9 if is_zero_address(token) else token
    payment = system.ratings.preview_payment(amount)

    return jsonify({
        "amount": amount,
        "payment": payment,
        "token_in": token_in,
        "token_out": token_out,
        "fee": fee,
        "amount_in": router.quote_exact_output_single(token_in, token_out, fee, payment),
    })
