"""
Tests for deployment wiring and configuration.

Tests:
- Unit parsing and formatting
- Per-network configuration and environment overrides
- Full system deployment and the local development system
"""

import os
import sys
from dataclasses import replace

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from chain import Chain
from deployment import (
    DEPLOY_CONFIGS,
    KNOWN_DEPLOYMENTS,
    WETH9,
    RatingsSystem,
    config_from_env,
    deploy_local_system,
    deploy_ratings_system,
    format_units,
    get_config,
    parse_ether,
    parse_units,
    parse_usdc,
)
from monitoring import metrics
from rating_tokens import MINTER_ROLE
from ratings_exceptions import ConfigurationError, ContractNotFound, ZeroAddress

UNIT = 10**18


class TestUnits:
    """Tests for unit conversion helpers."""

    def test_parse_usdc(self):
        assert parse_usdc("0.0001") == 100
        assert parse_usdc("1") == 1_000_000
        assert parse_usdc(5) == 5_000_000

    def test_parse_ether(self):
        assert parse_ether("1") == UNIT
        assert parse_ether("0.000000000000000001") == 1

    def test_parse_large_amount(self):
        assert parse_ether("10000000") == 10_000_000 * UNIT

    @pytest.mark.parametrize("amount", ["abc", "", "NaN", "Infinity"])
    def test_parse_invalid(self, amount):
        with pytest.raises(ValueError):
            parse_units(amount, 6)

    def test_parse_too_precise(self):
        with pytest.raises(ValueError, match="decimal places"):
            parse_usdc("0.0000001")

    @pytest.mark.parametrize(
        "value,decimals,expected",
        [
            (100_000, 6, "0.1"),
            (1_000_000, 6, "1"),
            (1, 18, "0.000000000000000001"),
            (1_500_000, 6, "1.5"),
            (-2_500_000, 6, "-2.5"),
            (0, 6, "0"),
        ],
    )
    def test_format_units(self, value, decimals, expected):
        assert format_units(value, decimals) == expected


class TestConfig:
    """Tests for per-network configuration."""

    def test_known_networks(self):
        assert set(DEPLOY_CONFIGS) == {31337, 84532, 8453, 11155111}

    def test_base_config(self):
        config = get_config(8453)
        assert config.name == "base"
        assert config.rating_price == parse_usdc("0.0001")
        assert config.payment_token == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

    def test_localhost_price(self):
        assert get_config(31337).rating_price == parse_usdc("0.1")

    def test_unknown_network(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_config(1)
        assert exc_info.value.details["chain_id"] == 1

    def test_known_deployments(self):
        assert set(KNOWN_DEPLOYMENTS[8453]) == {"ThumbsUp", "ThumbsDown", "ImmutableRatings"}

    def test_to_dict(self):
        data = get_config(84532).to_dict()
        assert data["chain_id"] == 84532
        assert data["name"] == "base-sepolia"


class TestConfigFromEnv:
    """Tests for RATINGS_* environment overrides."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "RATINGS_CHAIN_ID",
            "RATINGS_RECEIVER",
            "RATINGS_PAYMENT_TOKEN",
            "RATINGS_SWAP_ROUTER",
            "RATINGS_PRICE",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults_to_localhost(self):
        assert config_from_env() == get_config(31337)

    def test_chain_id(self, monkeypatch):
        monkeypatch.setenv("RATINGS_CHAIN_ID", "8453")
        assert config_from_env().name == "base"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("RATINGS_CHAIN_ID", "84532")
        monkeypatch.setenv("RATINGS_RECEIVER", "0x" + "ab" * 20)
        monkeypatch.setenv("RATINGS_PRICE", "250")
        config = config_from_env()
        assert config.receiver.lower() == "0x" + "ab" * 20
        assert config.rating_price == 250
        assert config.payment_token == get_config(84532).payment_token

    def test_native_payment_token(self, monkeypatch):
        monkeypatch.setenv("RATINGS_PAYMENT_TOKEN", "0x" + "00" * 20)
        assert config_from_env().payment_token == "0x" + "00" * 20

    @pytest.mark.parametrize(
        "name,value",
        [
            ("RATINGS_CHAIN_ID", "base"),
            ("RATINGS_CHAIN_ID", "1"),
            ("RATINGS_RECEIVER", "0x1234"),
            ("RATINGS_SWAP_ROUTER", "not-an-address"),
            ("RATINGS_PRICE", "0.1"),
            ("RATINGS_PRICE", "-5"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError):
            config_from_env()


class TestDeployRatingsSystem:
    """Tests for wiring a rating system."""

    def test_wiring(self, system, accounts, config):
        assert isinstance(system, RatingsSystem)
        assert system.deployer == accounts.deployer
        assert system.config is config
        assert system.ratings.token_up == system.token_up.address
        assert system.ratings.token_down == system.token_down.address
        assert system.ratings.immutable_mapping == system.mapping.address
        assert system.token_up.has_role(MINTER_ROLE, system.ratings)
        assert system.token_down.has_role(MINTER_ROLE, system.ratings)

    def test_swap_router_resolved_when_local(self, system, router):
        assert system.swap_router is router

    def test_external_router_not_resolved(self, chain, accounts):
        """Configs pointing at addresses outside the chain still deploy."""
        system = deploy_ratings_system(chain, accounts.deployer, get_config(31337))
        assert system.swap_router is None
        assert system.ratings.swap_router == get_config(31337).swap_router

    def test_defaults_to_chain_config(self, accounts):
        chain = Chain(chain_id=8453)
        system = deploy_ratings_system(chain, accounts.deployer)
        assert system.config == get_config(8453)

    def test_unconfigured_chain(self, accounts):
        with pytest.raises(ConfigurationError):
            deploy_ratings_system(Chain(chain_id=1), accounts.deployer)

    def test_failed_deploy_leaves_nothing(self, chain, accounts, config):
        before = len(chain.events)
        with pytest.raises(ZeroAddress):
            deploy_ratings_system(chain, accounts.deployer, replace(config, receiver="0x" + "00" * 20))
        assert len(chain.events) == before

    def test_token(self, system, usdc):
        assert system.token(usdc.address) is usdc
        with pytest.raises(ContractNotFound) as exc_info:
            system.token(system.ratings.address)
        assert exc_info.value.details["expected"] == "token ledger"

    def test_to_dict(self, system):
        data = system.to_dict()
        assert data["chain_id"] == 31337
        assert data["contracts"]["ImmutableRatings"] == system.ratings.address
        assert data["contracts"]["SwapRouter"] == system.swap_router.address

    def test_deploy_timing_recorded(self, chain, accounts, config):
        deploy_ratings_system(chain, accounts.deployer, config)
        assert metrics.get_all()["histograms"]["deploy_ratings_system_ms"]["_total"]["count"] >= 1


class TestDeployLocalSystem:
    """Tests for the self-contained development system."""

    @pytest.fixture
    def local(self, chain, accounts):
        return deploy_local_system(chain, accounts.deployer)

    def test_mocks(self, local):
        assert set(local.mocks) == {"mUSDC", "mDEGEN"}
        assert local.ratings.payment_token == local.mocks["mUSDC"].address

    def test_default_price(self, local):
        assert local.ratings.rating_price == parse_usdc("0.1")
        assert local.ratings.preview_payment(1000 * UNIT) == parse_usdc("100")

    def test_price_and_receiver_overrides(self, chain, accounts):
        local = deploy_local_system(chain, accounts.deployer, rating_price=100, receiver=accounts.receiver)
        assert local.ratings.rating_price == 100
        assert local.ratings.receiver == accounts.receiver

    def test_router_pools_and_liquidity(self, local, chain):
        router = local.swap_router
        usdc = local.mocks["mUSDC"]
        assert router.weth9 == WETH9
        assert len(router.pools) == 3
        assert usdc.balance_of(router) == parse_usdc("1000000")
        assert chain.native_balance_of(router) == parse_ether("1000")

    def test_deployer_funded(self, local, accounts):
        assert local.mocks["mUSDC"].balance_of(accounts.deployer) == parse_usdc("1000000")
        assert local.mocks["mDEGEN"].balance_of(accounts.deployer) == parse_ether("1000000")

    def test_end_to_end_rating(self, local, accounts):
        usdc = local.mocks["mUSDC"]
        usdc.approve(local.ratings, parse_usdc("1000"), sender=accounts.deployer)
        identity = local.ratings.create_up_rating("https://www.ratings.wtf", 10 * UNIT, sender=accounts.deployer)
        assert local.token_up.balance_of(identity) == 10 * UNIT
        assert usdc.balance_of(local.ratings.receiver) == parse_usdc("1")

    def test_to_dict_lists_mocks(self, local):
        contracts = local.to_dict()["contracts"]
        assert "mUSDC" in contracts
        assert "SwapRouter" in contracts
