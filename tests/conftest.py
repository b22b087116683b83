"""
Pytest configuration and shared fixtures for Immutable Ratings tests.

This module provides shared fixtures and test configuration including:
- A fresh Chain with funded accounts per test
- Mock payment/input tokens and a seeded swap router
- A fully wired rating system (token ledgers, registry, rating ledger)
- Flask app and test client serving that system
- API authentication headers
"""

import os
import sys
from types import SimpleNamespace

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Set up test environment before any imports
os.environ["RATINGS_API_KEY"] = "test-api-key-12345"
os.environ["RATINGS_REQUIRE_AUTH"] = "false"

from chain import Chain
from deployment import (
    DEGEN_USDC_PRICE,
    DEGEN_WETH_PRICE,
    WETH9,
    WETH_USDC_PRICE,
    DeployConfig,
    deploy_ratings_system,
    parse_ether,
    parse_usdc,
)
from monitoring import metrics
from rating_tokens import MockERC20
from swap_router import SwapRouter

UNIT = 10**18

# 0.0001 USDC per rating
PRICE = parse_usdc("0.0001")

ORIGIN = "https://www.ratings.wtf"
ORIGIN_IDENTITY = "0x4cAF50D10399FB59c024b9FcC6CCc986bBF56321"


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty metrics."""
    metrics.reset()
    yield


@pytest.fixture
def chain():
    """Create a fresh local chain."""
    return Chain()


@pytest.fixture
def accounts(chain):
    """Named accounts, each funded with 100 native units."""
    return SimpleNamespace(
        deployer=chain.create_account("deployer", balance=parse_ether("100")),
        alice=chain.create_account("alice", balance=parse_ether("100")),
        bob=chain.create_account("bob", balance=parse_ether("100")),
        receiver=chain.create_account("receiver"),
        mallory=chain.create_account("mallory", balance=parse_ether("100")),
    )


@pytest.fixture
def usdc(chain, accounts):
    """Mock USDC (6 decimals); alice and bob hold 1,000 each."""
    token = chain.deploy(MockERC20, "Mock USD Coin", "mUSDC", 6, deployer=accounts.deployer)
    token.mint(accounts.alice, parse_usdc("1000"), sender=accounts.deployer)
    token.mint(accounts.bob, parse_usdc("1000"), sender=accounts.deployer)
    return token


@pytest.fixture
def degen(chain, accounts):
    """Mock DEGEN (18 decimals); alice holds 1,000,000."""
    token = chain.deploy(MockERC20, "Mock Degen", "mDEGEN", 18, deployer=accounts.deployer)
    token.mint(accounts.alice, parse_ether("1000000"), sender=accounts.deployer)
    return token


@pytest.fixture
def router(chain, accounts, usdc, degen):
    """Swap router with DEGEN/USDC, WETH/USDC and DEGEN/WETH pools and reserves."""
    router = chain.deploy(SwapRouter, WETH9, deployer=accounts.deployer)
    router.add_pool(degen, usdc, 10000, DEGEN_USDC_PRICE, sender=accounts.deployer)
    router.add_pool(WETH9, usdc, 3000, WETH_USDC_PRICE, sender=accounts.deployer)
    router.add_pool(degen, WETH9, 3000, DEGEN_WETH_PRICE, sender=accounts.deployer)

    usdc.mint(router, parse_usdc("100000"), sender=accounts.deployer)
    degen.mint(router, parse_ether("100000"), sender=accounts.deployer)
    chain.set_balance(router.address, parse_ether("1000"))
    return router


@pytest.fixture
def config(accounts, usdc, router):
    """Deploy config paying USDC at 0.0001 per rating."""
    return DeployConfig(
        chain_id=31337,
        name="test",
        receiver=accounts.receiver,
        payment_token=usdc.address,
        swap_router=router.address,
        rating_price=PRICE,
    )


@pytest.fixture
def system(chain, accounts, config):
    """Fully wired rating system."""
    return deploy_ratings_system(chain, accounts.deployer, config)


@pytest.fixture
def ratings(system):
    return system.ratings


@pytest.fixture
def mapping(system):
    return system.mapping


@pytest.fixture
def token_up(system):
    return system.token_up


@pytest.fixture
def token_down(system):
    return system.token_down


@pytest.fixture
def approved(usdc, ratings, accounts):
    """Alice and bob have approved the ledger to pull their USDC."""
    usdc.approve(ratings, parse_usdc("1000"), sender=accounts.alice)
    usdc.approve(ratings, parse_usdc("1000"), sender=accounts.bob)
    return usdc


@pytest.fixture
def flask_app(system):
    """Create Flask test app serving a fresh system for each test."""
    from api import create_app, state

    app = create_app(system)
    app.config['TESTING'] = True
    yield app
    state.set_system(None)


@pytest.fixture
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def test_auth_headers():
    """Headers for authenticated requests."""
    return {
        "Content-Type": "application/json",
        "X-API-Key": "test-api-key-12345"
    }
