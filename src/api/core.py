"""
Core system blueprint.

This blueprint handles:
- The deployed system's contract addresses
- Event log retrieval
- Token ledger balances
"""

from flask import Blueprint, jsonify, request

from api import state
from api.utils import DEFAULT_PAGE_LIMIT, RequestValidationError, parse_address, validate_pagination_params

core_bp = Blueprint("core", __name__)


@core_bp.route("/system", methods=["GET"])
def get_system_info():
    """
    Describe the deployed rating system.

    Returns:
        Chain id, deployer, network config and contract addresses
    """
    return jsonify(state.get_system().to_dict())


@core_bp.route("/events", methods=["GET"])
def get_events():
    """
    Read the event log, oldest first.

    Query params:
        name: Filter by event name (e.g. RatingUpCreated)
        address: Filter by emitting contract
        limit: Page size (default 50, max 100)
        offset: Events to skip
    """
    system = state.get_system()

    address = request.args.get("address")
    if address:
        address = parse_address(address, "address")

    try:
        limit, offset = validate_pagination_params(
            request.args.get("limit", DEFAULT_PAGE_LIMIT),
            request.args.get("offset", 0),
        )
    except ValueError:
        raise RequestValidationError("limit and offset must be integers") from None

    events = system.chain.get_events(name=request.args.get("name") or None, address=address)
    page = events[offset:offset + limit]

    return jsonify({
        "count": len(events),
        "limit": limit,
        "offset": offset,
        "events": [event.to_dict() for event in page],
    })


@core_bp.route("/tokens/<token>/balances/<account>", methods=["GET"])
def get_token_balance(token: str, account: str):
    """Balance of any token ledger on the system's chain."""
    system = state.get_system()
    ledger = system.token(parse_address(token, "token"))
    holder = parse_address(account, "account")
    return jsonify({
        "token": ledger.address,
        "symbol": ledger.symbol,
        "decimals": ledger.decimals,
        "account": holder,
        "balance": ledger.balance_of(holder),
        "allowance_to_ratings": ledger.allowance(holder, system.ratings.address),
    })
