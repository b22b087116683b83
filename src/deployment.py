"""
Immutable Ratings - Deployment and Configuration

Per-network deployment parameters, unit conversion helpers and the wiring
that brings a complete rating system up on a Chain:

1. Deploy the Thumbs Up and Thumbs Down ledgers
2. Deploy the identity mapping registry
3. Deploy the rating ledger pointing at all of the above
4. Grant MINTER_ROLE on both token ledgers to the rating ledger

Configuration comes from the per-network table below, overridable with
environment variables:

    RATINGS_CHAIN_ID       Network to configure for (default 31337)
    RATINGS_RECEIVER       Payment receiver
    RATINGS_PAYMENT_TOKEN  Settlement token (zero address for native currency)
    RATINGS_SWAP_ROUTER    Swap service address
    RATINGS_PRICE          Payment base units per rating unit
"""

import os
from dataclasses import asdict, dataclass, field, replace
from decimal import Decimal, InvalidOperation, localcontext
from fractions import Fraction
from typing import Any

from addresses import ZERO_ADDRESS, is_address, normalize_address
from chain import DEFAULT_CHAIN_ID, Chain
from identity_mapping import ImmutableMapping
from immutable_ratings import ImmutableRatings
from monitoring import get_logger, timed
from rating_tokens import MINTER_ROLE, MockERC20, ThumbsDown, ThumbsUp, TokenLedger
from ratings_exceptions import ConfigurationError, ContractNotFound
from swap_router import SwapRouter

logger = get_logger(__name__)

USDC_DECIMALS = 6
ETHER_DECIMALS = 18

# Native currency sentinel for payment and swap input tokens
NATIVE_TOKEN = ZERO_ADDRESS

# Wrapped native token on Base; stands for native currency in swap routes
WETH9 = "0x4200000000000000000000000000000000000006"


# =============================================================================
# Unit Conversion
# =============================================================================


def parse_units(amount: str | int | Decimal, decimals: int) -> int:
    """
    Convert a human-readable amount to base units.

    Args:
        amount: Decimal amount such as "0.0001"
        decimals: Token decimals

    Raises:
        ValueError: If the amount is malformed or more precise than decimals allow
    """
    with localcontext() as ctx:
        ctx.prec = 80
        try:
            value = Decimal(str(amount).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {amount!r}") from None
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {amount!r}")

        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{amount} has more than {decimals} decimal places")
        return int(scaled)


def parse_usdc(amount: str | int | Decimal) -> int:
    return parse_units(amount, USDC_DECIMALS)


def parse_ether(amount: str | int | Decimal) -> int:
    return parse_units(amount, ETHER_DECIMALS)


def format_units(value: int, decimals: int) -> str:
    """Render base units as a decimal string without trailing zeros."""
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10**decimals)
    if not fraction:
        return f"{sign}{whole}"
    digits = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{digits}"


# =============================================================================
# Network Configuration
# =============================================================================


@dataclass(frozen=True)
class DeployConfig:
    """Deployment parameters for one network."""
    chain_id: int
    name: str
    receiver: str
    payment_token: str
    swap_router: str
    rating_price: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEPLOY_CONFIGS: dict[int, DeployConfig] = {
    31337: DeployConfig(
        chain_id=31337,
        name="localhost",
        receiver="0x30e7120ce8c0ABA197f1C4EccF2F4E1e1C75ab1d",
        payment_token="0x9040dBA0e68d3B45983F3767cC5667c5f1873059",
        swap_router="0x2626664c2603336E57B271c5C0b26F421741e481",
        rating_price=parse_usdc("0.1"),
    ),
    84532: DeployConfig(
        chain_id=84532,
        name="base-sepolia",
        receiver="0x30e7120ce8c0ABA197f1C4EccF2F4E1e1C75ab1d",
        payment_token="0x9040dBA0e68d3B45983F3767cC5667c5f1873059",
        swap_router="0x94cC0AaC535CCDB3C01d6787D6413C739ae12bc4",
        rating_price=parse_usdc("0.0001"),
    ),
    8453: DeployConfig(
        chain_id=8453,
        name="base",
        receiver="0xc1Ec5b421905290F477C741ADf97c062921AA18A",
        payment_token="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        swap_router="0x2626664c2603336E57B271c5C0b26F421741e481",
        rating_price=parse_usdc("0.0001"),
    ),
    11155111: DeployConfig(
        chain_id=11155111,
        name="sepolia",
        receiver="0xfC664488cCf05B8e88Ac52EBB3536529b06Ec11E",
        payment_token="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        swap_router="0x3bFA4769FB09eefC5a80d6E87c3B9C650f7Ae48E",
        rating_price=parse_usdc("0.0001"),
    ),
}

# Addresses of the live deployments, by chain id
KNOWN_DEPLOYMENTS: dict[int, dict[str, str]] = {
    8453: {
        "ThumbsUp": "0xE6D3d08a6519F1346344bba0F25A6fE7aB50F06C",
        "ThumbsDown": "0x4461a66A7B5eCdBBE0bbBf09b41816f94c4834b2",
        "ImmutableRatings": "0xE07f02ff153d2e4F20cEbcEe7C3478243Bab442f",
    },
    84532: {
        "ThumbsUp": "0x9E8765f0958F7FafD5c15F4F24E7e0a9c03f61e1",
        "ThumbsDown": "0x14932F95a27364e9d27E899EBA1f6F54C11429b4",
        "ImmutableRatings": "0xa7F2e133604A663395d7E4f008faCB94c097DcB3",
    },
}


def get_config(chain_id: int) -> DeployConfig:
    """
    Look up the deployment parameters of a network.

    Raises:
        ConfigurationError: If the network is not configured
    """
    config = DEPLOY_CONFIGS.get(int(chain_id))
    if config is None:
        raise ConfigurationError(
            f"No deploy config for chain {chain_id}",
            details={"chain_id": chain_id, "supported": sorted(DEPLOY_CONFIGS)},
        )
    return config


def _env_address(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    if not is_address(value):
        raise ConfigurationError(f"{name} is not a valid address", details={"variable": name, "value": value})
    return normalize_address(value)


def config_from_env() -> DeployConfig:
    """
    Build a DeployConfig from RATINGS_* environment variables.

    Starts from the table entry for RATINGS_CHAIN_ID and applies any
    per-field overrides.

    Raises:
        ConfigurationError: On an unknown chain or malformed value
    """
    raw_chain_id = os.getenv("RATINGS_CHAIN_ID", str(DEFAULT_CHAIN_ID))
    try:
        chain_id = int(raw_chain_id)
    except ValueError:
        raise ConfigurationError(
            "RATINGS_CHAIN_ID must be an integer", details={"value": raw_chain_id}
        ) from None

    config = get_config(chain_id)
    overrides: dict[str, Any] = {}

    for field_name, variable in (
        ("receiver", "RATINGS_RECEIVER"),
        ("payment_token", "RATINGS_PAYMENT_TOKEN"),
        ("swap_router", "RATINGS_SWAP_ROUTER"),
    ):
        address = _env_address(variable)
        if address is not None:
            overrides[field_name] = address

    raw_price = os.getenv("RATINGS_PRICE")
    if raw_price:
        try:
            overrides["rating_price"] = int(raw_price)
        except ValueError:
            raise ConfigurationError(
                "RATINGS_PRICE must be an integer number of base units", details={"value": raw_price}
            ) from None
        if overrides["rating_price"] < 0:
            raise ConfigurationError("RATINGS_PRICE must be non-negative", details={"value": raw_price})

    return replace(config, **overrides) if overrides else config


# =============================================================================
# Deployment
# =============================================================================


@dataclass
class RatingsSystem:
    """A deployed rating system and its supporting contracts."""
    chain: Chain
    deployer: str
    config: DeployConfig
    token_up: ThumbsUp
    token_down: ThumbsDown
    mapping: ImmutableMapping
    ratings: ImmutableRatings
    swap_router: SwapRouter | None = None
    mocks: dict[str, TokenLedger] = field(default_factory=dict)

    def token(self, address) -> TokenLedger:
        """Resolve a token ledger deployed on this system's chain."""
        contract = self.chain.contract_at(address)
        if not isinstance(contract, TokenLedger):
            raise ContractNotFound(normalize_address(address), expected="token ledger", action="token")
        return contract

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain.chain_id,
            "deployer": self.deployer,
            "config": self.config.to_dict(),
            "contracts": {
                "ThumbsUp": self.token_up.address,
                "ThumbsDown": self.token_down.address,
                "ImmutableMapping": self.mapping.address,
                "ImmutableRatings": self.ratings.address,
                **({"SwapRouter": self.swap_router.address} if self.swap_router else {}),
                **{symbol: mock.address for symbol, mock in self.mocks.items()},
            },
        }


@timed("deploy_ratings_system_ms")
def deploy_ratings_system(chain: Chain, deployer, config: DeployConfig | None = None) -> RatingsSystem:
    """
    Deploy and wire the token ledgers, registry and rating ledger.

    Args:
        chain: Target chain
        deployer: Deploying account; becomes owner and token admin
        config: Deployment parameters (defaults to the chain's table entry)
    """
    deployer = normalize_address(deployer)
    config = config or get_config(chain.chain_id)

    with chain.atomic():
        token_up = chain.deploy(ThumbsUp, deployer=deployer)
        token_down = chain.deploy(ThumbsDown, deployer=deployer)
        mapping = chain.deploy(ImmutableMapping, deployer=deployer)
        ratings = chain.deploy(
            ImmutableRatings,
            token_up,
            token_down,
            mapping,
            config.receiver,
            config.swap_router,
            config.payment_token,
            config.rating_price,
            deployer=deployer,
        )

        token_up.grant_role(MINTER_ROLE, ratings, sender=deployer)
        token_down.grant_role(MINTER_ROLE, ratings, sender=deployer)

    router = chain.contract_at(config.swap_router) if chain.is_contract(config.swap_router) else None

    logger.info(
        "Deployed rating system on chain %d", chain.chain_id,
        extra={"ratings": ratings.address, "payment_token": config.payment_token},
    )
    return RatingsSystem(
        chain=chain,
        deployer=deployer,
        config=config,
        token_up=token_up,
        token_down=token_down,
        mapping=mapping,
        ratings=ratings,
        swap_router=router,
    )


# Local pool prices, in output base units per input base unit
DEGEN_USDC_PRICE = Fraction(10**4, 10**18)  # 1 DEGEN = 0.01 USDC
WETH_USDC_PRICE = Fraction(2500 * 10**6, 10**18)  # 1 ETH = 2500 USDC
DEGEN_WETH_PRICE = DEGEN_USDC_PRICE / WETH_USDC_PRICE


@timed("deploy_local_system_ms")
def deploy_local_system(
    chain: Chain,
    deployer,
    rating_price: int | None = None,
    receiver: str | None = None,
) -> RatingsSystem:
    """
    Deploy a self-contained development system.

    Adds mock mUSDC (6 decimals) and mDEGEN (18 decimals) tokens and a swap
    router seeded with liquidity, with pools:

        mDEGEN/mUSDC (1%), WETH/mUSDC (0.3%), mDEGEN/WETH (0.3%)

    The deployer is funded with 1,000,000 mUSDC and mDEGEN.
    """
    deployer = normalize_address(deployer)
    base = get_config(DEFAULT_CHAIN_ID)

    with chain.atomic():
        usdc = chain.deploy(MockERC20, "Mock USD Coin", "mUSDC", USDC_DECIMALS, deployer=deployer)
        degen = chain.deploy(MockERC20, "Mock Degen", "mDEGEN", ETHER_DECIMALS, deployer=deployer)
        router = chain.deploy(SwapRouter, WETH9, deployer=deployer)

        router.add_pool(degen, usdc, 10000, DEGEN_USDC_PRICE, sender=deployer)
        router.add_pool(WETH9, usdc, 3000, WETH_USDC_PRICE, sender=deployer)
        router.add_pool(degen, WETH9, 3000, DEGEN_WETH_PRICE, sender=deployer)

        usdc.mint(router, parse_usdc("1000000"), sender=deployer)
        degen.mint(router, parse_ether("1000000"), sender=deployer)
        chain.set_balance(router.address, chain.native_balance_of(router) + parse_ether("1000"))

        usdc.mint(deployer, parse_usdc("1000000"), sender=deployer)
        degen.mint(deployer, parse_ether("1000000"), sender=deployer)

        config = replace(
            base,
            receiver=normalize_address(receiver) if receiver else base.receiver,
            payment_token=usdc.address,
            swap_router=router.address,
            rating_price=base.rating_price if rating_price is None else rating_price,
        )
        system = deploy_ratings_system(chain, deployer, config)

    system.mocks = {"mUSDC": usdc, "mDEGEN": degen}
    return system
