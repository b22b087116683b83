"""
Immutable Ratings - Swap Router

Exact-output currency conversion used by the swap-funded rating entry
points. The rating ledger treats the router as a black box with one
contract: pull at most ``amount_in_maximum`` of the input token from the
caller, deliver exactly ``amount_out`` of the output token to
``recipient``, or fail.

This in-process router prices swaps with fixed-rate pools keyed by token
pair and fee tier, holding its own reserves. Routes are either a single
pool (input token + fee tier) or a packed multi-hop path in the Uniswap V3
layout:

    token(20 bytes) | fee(3 bytes) | token(20 bytes) | fee(3 bytes) | ...

Exact-output paths are encoded in reverse: the output token comes first and
the input token last.

The wrapped-native token address (``weth9``) stands for native currency:
native input is taken from the attached value and native output is paid as
native currency. Unspent native input is refunded to the caller.
"""

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Any

from addresses import normalize_address, to_checksum_address
from chain import Chain, Contract, transaction
from monitoring import get_logger
from ratings_exceptions import (
    ContractNotFound,
    InsufficientNativeBalance,
    InvalidPath,
    OwnableUnauthorizedAccount,
    SwapError,
    TokenError,
    TransferFailed,
)

logger = get_logger(__name__)

# Fee tiers in hundredths of a basis point
FEE_TIERS = (100, 500, 3000, 10000)
FEE_DENOMINATOR = 1_000_000

ADDR_SIZE = 20
FEE_SIZE = 3
NEXT_OFFSET = ADDR_SIZE + FEE_SIZE
POP_OFFSET = NEXT_OFFSET + ADDR_SIZE


# =============================================================================
# Path Encoding
# =============================================================================


def encode_path(tokens: list, fees: list[int]) -> bytes:
    """
    Pack a multi-hop route.

    Args:
        tokens: Token addresses along the route (at least two)
        fees: Fee tier of each hop (one fewer than tokens)

    Returns:
        Packed path bytes
    """
    if len(tokens) < 2 or len(fees) != len(tokens) - 1:
        raise ValueError("A path needs at least two tokens and one fee per hop")

    path = b""
    for i, token in enumerate(tokens):
        path += bytes.fromhex(normalize_address(token)[2:])
        if i < len(fees):
            path += fees[i].to_bytes(FEE_SIZE, "big")
    return path


def decode_path(path: bytes | str) -> list[tuple[str, int, str]]:
    """
    Unpack a route into (token_a, fee, token_b) hops in path order.

    Raises:
        InvalidPath: If the path length is not 20 + 23*n bytes for n >= 1
    """
    if isinstance(path, str):
        path = bytes.fromhex(path[2:] if path.startswith("0x") else path)

    if len(path) < POP_OFFSET or (len(path) - ADDR_SIZE) % NEXT_OFFSET != 0:
        raise InvalidPath(len(path))

    hops = []
    offset = 0
    while offset + POP_OFFSET <= len(path):
        token_a = to_checksum_address(path[offset:offset + ADDR_SIZE])
        fee = int.from_bytes(path[offset + ADDR_SIZE:offset + NEXT_OFFSET], "big")
        token_b = to_checksum_address(path[offset + NEXT_OFFSET:offset + POP_OFFSET])
        hops.append((token_a, fee, token_b))
        offset += NEXT_OFFSET
    return hops


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ExactOutputSingleParams:
    """Single-pool exact-output swap request."""
    token_in: str
    token_out: str
    fee: int
    recipient: str
    amount_out: int
    amount_in_maximum: int


@dataclass(frozen=True)
class ExactOutputParams:
    """Multi-hop exact-output swap request (path runs output -> input)."""
    path: bytes
    recipient: str
    amount_out: int
    amount_in_maximum: int


@dataclass(frozen=True)
class Pool:
    """
    Fixed-rate pool.

    ``price`` is the number of token1 base units per token0 base unit.
    """
    token0: str
    token1: str
    fee: int
    price: Fraction

    def amount_in_for(self, token_in: str, token_out: str, amount_out: int) -> int:
        """Input needed to receive exactly ``amount_out``, fee included, rounded up."""
        if (token_in, token_out) == (self.token0, self.token1):
            raw = Fraction(amount_out) / self.price
        elif (token_in, token_out) == (self.token1, self.token0):
            raw = Fraction(amount_out) * self.price
        else:
            raise SwapError("Token pair does not match pool", action="quote")
        return math.ceil(raw * FEE_DENOMINATOR / (FEE_DENOMINATOR - self.fee))

    def to_dict(self) -> dict[str, Any]:
        return {
            "token0": self.token0,
            "token1": self.token1,
            "fee": self.fee,
            "price": str(self.price),
        }


# =============================================================================
# Router
# =============================================================================


class SwapRouter(Contract):
    """Exact-output swap router over fixed-rate pools."""

    STATE_FIELDS = ("_pools",)

    def __init__(self, chain: Chain, deployer, weth9):
        super().__init__(chain, deployer)
        self.weth9 = normalize_address(weth9)
        self._pools: dict[tuple[str, str, int], Pool] = {}

    # ==================== POOLS ====================

    @transaction
    def add_pool(self, token_a, token_b, fee: int, price, *, sender: str) -> Pool:
        """
        Register (or reprice) a pool. Only the router deployer may do this.

        Args:
            token_a: First token
            token_b: Second token
            fee: Fee tier (one of FEE_TIERS)
            price: token_b base units per token_a base unit
        """
        if sender != self.deployer:
            raise OwnableUnauthorizedAccount(sender, action="add_pool")
        if fee not in FEE_TIERS:
            raise SwapError(f"Unsupported fee tier {fee}", action="add_pool", details={"fee": fee})

        price = Fraction(price)
        if price <= 0:
            raise SwapError("Pool price must be positive", action="add_pool")

        token_a = normalize_address(token_a)
        token_b = normalize_address(token_b)
        pool = Pool(token0=token_a, token1=token_b, fee=fee, price=price)
        self._pools[self._pool_key(token_a, token_b, fee)] = pool

        self.emit("PoolUpdated", token0=token_a, token1=token_b, fee=fee, price=str(price))
        return pool

    def get_pool(self, token_a, token_b, fee: int) -> Pool:
        key = self._pool_key(normalize_address(token_a), normalize_address(token_b), fee)
        pool = self._pools.get(key)
        if pool is None:
            raise SwapError(
                "Pool not found",
                action="get_pool",
                details={"token_a": key[0], "token_b": key[1], "fee": fee},
            )
        return pool

    @property
    def pools(self) -> list[Pool]:
        return list(self._pools.values())

    @staticmethod
    def _pool_key(token_a: str, token_b: str, fee: int) -> tuple[str, str, int]:
        low, high = sorted((token_a, token_b), key=str.lower)
        return (low, high, fee)

    # ==================== QUOTES ====================

    def quote_exact_output_single(self, token_in, token_out, fee: int, amount_out: int) -> int:
        token_in = normalize_address(token_in)
        token_out = normalize_address(token_out)
        return self.get_pool(token_in, token_out, fee).amount_in_for(token_in, token_out, amount_out)

    def quote_exact_output(self, path: bytes | str, amount_out: int) -> int:
        """Walk an exact-output path from the output token back to the input token."""
        amount = amount_out
        for token_out, fee, token_in in decode_path(path):
            amount = self.get_pool(token_in, token_out, fee).amount_in_for(token_in, token_out, amount)
        return amount

    # ==================== SWAPS ====================

    @transaction(payable=True)
    def exact_output_single(self, params: ExactOutputSingleParams, *, sender: str, value: int = 0) -> int:
        """
        Swap for exactly ``params.amount_out`` through one pool.

        Returns:
            Amount of input token consumed
        """
        amount_in = self.quote_exact_output_single(
            params.token_in, params.token_out, params.fee, params.amount_out
        )
        return self._settle(
            normalize_address(params.token_in),
            normalize_address(params.token_out),
            normalize_address(params.recipient),
            params.amount_out,
            params.amount_in_maximum,
            amount_in,
            payer=sender,
            value=value,
        )

    @transaction(payable=True)
    def exact_output(self, params: ExactOutputParams, *, sender: str, value: int = 0) -> int:
        """
        Swap for exactly ``params.amount_out`` along a multi-hop path.

        Returns:
            Amount of input token consumed
        """
        hops = decode_path(params.path)
        token_out = hops[0][0]
        token_in = hops[-1][2]
        amount_in = self.quote_exact_output(params.path, params.amount_out)
        return self._settle(
            token_in,
            token_out,
            normalize_address(params.recipient),
            params.amount_out,
            params.amount_in_maximum,
            amount_in,
            payer=sender,
            value=value,
        )

    def _settle(
        self,
        token_in: str,
        token_out: str,
        recipient: str,
        amount_out: int,
        amount_in_maximum: int,
        amount_in: int,
        payer: str,
        value: int,
    ) -> int:
        if amount_in > amount_in_maximum:
            raise SwapError(
                "Too much requested",
                details={"amount_in": amount_in, "amount_in_maximum": amount_in_maximum},
            )

        refund = value
        if token_in == self.weth9 and value:
            if value < amount_in:
                raise TransferFailed(token_in, action="exact_output")
            refund = value - amount_in
        else:
            self._pull(token_in, payer, amount_in)

        self._pay(token_out, recipient, amount_out)
        if refund:
            self.chain.transfer_native(self.address, payer, refund)

        self.emit(
            "Swap",
            sender=payer,
            recipient=recipient,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
        )
        logger.debug("Swapped %d for %d", amount_in, amount_out, extra={"token_out": token_out})
        return amount_in

    def _pull(self, token: str, payer: str, amount: int) -> None:
        try:
            self.contract(token).transfer_from(payer, self.address, amount, sender=self.address)
        except (TokenError, ContractNotFound) as e:
            raise TransferFailed(token, action="exact_output", cause=e) from e

    def _pay(self, token: str, recipient: str, amount: int) -> None:
        try:
            if token == self.weth9:
                self.chain.transfer_native(self.address, recipient, amount)
            else:
                self.contract(token).transfer(recipient, amount, sender=self.address)
        except (TokenError, InsufficientNativeBalance, ContractNotFound) as e:
            raise SwapError(
                "Insufficient liquidity",
                details={"token": token, "amount": amount},
            ) from e
