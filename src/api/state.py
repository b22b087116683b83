"""
Shared state for the Immutable Ratings API.

Holds the rating system served by every blueprint. It is created lazily
from RATINGS_* environment variables on first use, or injected by
``create_app(system)``.
"""

import threading

from chain import DEFAULT_CHAIN_ID, Chain
from deployment import RatingsSystem, config_from_env, deploy_local_system, deploy_ratings_system
from monitoring import get_logger

logger = get_logger(__name__)

DEPLOYER_LABEL = "deployer"

_system: RatingsSystem | None = None
_system_lock = threading.Lock()


def init_system() -> RatingsSystem:
    """
    Deploy a fresh rating system for the configured network.

    The local network gets the self-contained development system (mock
    tokens and a seeded swap router). Other networks get the ledger wired to
    their configured addresses.
    """
    config = config_from_env()
    chain = Chain(config.chain_id)
    deployer = chain.create_account(DEPLOYER_LABEL)

    if config.chain_id == DEFAULT_CHAIN_ID:
        system = deploy_local_system(chain, deployer, rating_price=config.rating_price, receiver=config.receiver)
    else:
        system = deploy_ratings_system(chain, deployer, config)

    logger.info("Serving rating system on chain %d", config.chain_id, extra=system.to_dict()["contracts"])
    return system


def get_system() -> RatingsSystem:
    global _system
    with _system_lock:
        if _system is None:
            _system = init_system()
        return _system


def set_system(system: RatingsSystem | None) -> None:
    global _system
    with _system_lock:
        _system = system
