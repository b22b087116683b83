"""
Immutable Ratings - Rating Ledger

Payment-gated minting of Thumbs Up / Thumbs Down balances to the identity
derived from an origin.

A rating request runs as one atomic call:

1. Reject if paused (ContractPaused)
2. Reject amounts that are not a positive multiple of RATING_UNIT
3. Derive the target identity (registration of the origin is not required)
4. Compute the payment: amount * rating_price // RATING_UNIT
5. Collect the payment, either directly (native value or token pull) or
   through an exact-output swap delivered to the receiver
6. Mint the amount to the identity on the up or down ledger
7. Add the amount to the caller's lifetime rating count
8. Emit RatingUpCreated / RatingDownCreated

External calls (payment, swap) happen before the local effects (mint,
counter, event), every entry point is guarded against re-entry, and any
failure unwinds the whole call.

Administration is single-owner with a two-step ownership handoff:
Owned{owner} -> PendingTransfer{owner, pending_owner} -> Owned{pending_owner}.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from addresses import ZERO_ADDRESS, is_zero_address, normalize_address
from chain import Chain, Contract, non_reentrant, transaction
from monitoring import get_logger, metrics
from rating_tokens import TokenLedger
from ratings_exceptions import (
    ContractNotFound,
    ContractPaused,
    InsufficientNativeBalance,
    InvalidPayment,
    InvalidRatingAmount,
    OwnableUnauthorizedAccount,
    SwapError,
    TokenError,
    TransferFailed,
    ZeroAddress,
)
from swap_router import ExactOutputParams, ExactOutputSingleParams, decode_path

logger = get_logger(__name__)

VERSION = "2.0.0"

# Rating amounts are counted in 18-decimal units; fractions of a unit are rejected
RATING_UNIT = 10**18


class RatingDirection(Enum):
    """Which ledger a rating mints into."""
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class SwapParamsSingle:
    """
    Single-hop swap funding.

    Attributes:
        token: Input token (zero address for native currency)
        fee: Fee tier of the input/payment-token pool
        amount_in_maximum: Most input the caller is willing to spend
    """
    token: str
    fee: int
    amount_in_maximum: int


@dataclass(frozen=True)
class SwapParamsMultihop:
    """
    Multi-hop swap funding.

    Attributes:
        token: Input token (zero address for native currency)
        path: Packed exact-output path, payment token first, input token last
        amount_in_maximum: Most input the caller is willing to spend
    """
    token: str
    path: bytes
    amount_in_maximum: int


class ImmutableRatings(Contract):
    """
    Rating ledger orchestrating payment, minting and per-user accounting.
    """

    VERSION = VERSION
    RATING_UNIT = RATING_UNIT

    STATE_FIELDS = (
        "owner",
        "pending_owner",
        "receiver",
        "payment_token",
        "rating_price",
        "is_paused",
        "_user_ratings",
    )

    def __init__(
        self,
        chain: Chain,
        deployer,
        token_up,
        token_down,
        immutable_mapping,
        receiver,
        swap_router,
        payment_token,
        rating_price: int,
    ):
        """
        Deploy the rating ledger.

        Args:
            chain: Hosting chain
            deployer: Account deploying the ledger; becomes the owner
            token_up: Up ledger (contract or address)
            token_down: Down ledger (contract or address)
            immutable_mapping: Identity mapping registry (contract or address)
            receiver: Payment destination
            swap_router: Swap service (contract or address)
            payment_token: Settlement token; the zero address selects native currency
            rating_price: Payment units per RATING_UNIT of rating

        Raises:
            ZeroAddress: If any argument other than payment_token is zero
        """
        for argument, value in (
            ("token_up", token_up),
            ("token_down", token_down),
            ("immutable_mapping", immutable_mapping),
            ("receiver", receiver),
            ("swap_router", swap_router),
        ):
            if is_zero_address(value):
                raise ZeroAddress(argument, component="immutable_ratings", action="constructor")

        super().__init__(chain, deployer)

        self.token_up = normalize_address(token_up)
        self.token_down = normalize_address(token_down)
        self.immutable_mapping = normalize_address(immutable_mapping)
        self.swap_router = normalize_address(swap_router)

        self.owner = self.deployer
        self.pending_owner = ZERO_ADDRESS
        self.receiver = normalize_address(receiver)
        self.payment_token = normalize_address(payment_token)
        self.rating_price = rating_price
        self.is_paused = False

        self._user_ratings: dict[str, int] = {}

        self.emit("OwnershipTransferred", previous_owner=ZERO_ADDRESS, new_owner=self.owner)

    # ==================== QUERIES ====================

    @property
    def is_native_payment(self) -> bool:
        return is_zero_address(self.payment_token)

    def preview_payment(self, amount: int) -> int:
        """Payment required for a rating amount."""
        return amount * self.rating_price // RATING_UNIT

    def get_user_ratings(self, user) -> int:
        """Lifetime amount rated by a user, up and down combined."""
        return self._user_ratings.get(normalize_address(user), 0)

    def get_config(self) -> dict[str, Any]:
        return {
            "version": VERSION,
            "token_up": self.token_up,
            "token_down": self.token_down,
            "immutable_mapping": self.immutable_mapping,
            "swap_router": self.swap_router,
            "receiver": self.receiver,
            "payment_token": self.payment_token,
            "rating_price": self.rating_price,
            "is_paused": self.is_paused,
            "owner": self.owner,
            "pending_owner": self.pending_owner,
        }

    # ==================== RATINGS ====================

    @transaction(payable=True)
    @non_reentrant
    def create_up_rating(self, origin: str, amount: int, data: bytes = b"", *, sender: str, value: int = 0) -> str:
        """
        Pay for and mint an up rating to the origin's identity.

        Returns:
            The identity the rating was minted to
        """
        return self._create_rating(RatingDirection.UP, origin, amount, data, sender, value)

    @transaction(payable=True)
    @non_reentrant
    def create_down_rating(self, origin: str, amount: int, data: bytes = b"", *, sender: str, value: int = 0) -> str:
        """Pay for and mint a down rating to the origin's identity."""
        return self._create_rating(RatingDirection.DOWN, origin, amount, data, sender, value)

    @transaction(payable=True)
    @non_reentrant
    def create_up_rating_swap(
        self,
        origin: str,
        amount: int,
        swap_params: SwapParamsSingle | SwapParamsMultihop,
        data: bytes = b"",
        *,
        sender: str,
        value: int = 0,
    ) -> str:
        """Mint an up rating, funding the payment with an exact-output swap."""
        return self._create_rating_swap(RatingDirection.UP, origin, amount, swap_params, data, sender, value)

    @transaction(payable=True)
    @non_reentrant
    def create_down_rating_swap(
        self,
        origin: str,
        amount: int,
        swap_params: SwapParamsSingle | SwapParamsMultihop,
        data: bytes = b"",
        *,
        sender: str,
        value: int = 0,
    ) -> str:
        """Mint a down rating, funding the payment with an exact-output swap."""
        return self._create_rating_swap(RatingDirection.DOWN, origin, amount, swap_params, data, sender, value)

    def create_up_rating_swap_single(self, origin, amount, swap_params: SwapParamsSingle, data=b"", *, sender, value=0):
        return self.create_up_rating_swap(origin, amount, swap_params, data, sender=sender, value=value)

    def create_up_rating_swap_multihop(self, origin, amount, swap_params: SwapParamsMultihop, data=b"", *, sender, value=0):
        return self.create_up_rating_swap(origin, amount, swap_params, data, sender=sender, value=value)

    def create_down_rating_swap_single(self, origin, amount, swap_params: SwapParamsSingle, data=b"", *, sender, value=0):
        return self.create_down_rating_swap(origin, amount, swap_params, data, sender=sender, value=value)

    def create_down_rating_swap_multihop(self, origin, amount, swap_params: SwapParamsMultihop, data=b"", *, sender, value=0):
        return self.create_down_rating_swap(origin, amount, swap_params, data, sender=sender, value=value)

    def _create_rating(
        self,
        direction: RatingDirection,
        origin: str,
        amount: int,
        data: bytes,
        sender: str,
        value: int,
    ) -> str:
        identity, payment = self._prepare_rating(origin, amount)
        self._collect_payment(payment, sender, value)
        self._record_rating(direction, origin, identity, amount, payment, data, sender)
        return identity

    def _create_rating_swap(
        self,
        direction: RatingDirection,
        origin: str,
        amount: int,
        swap_params: SwapParamsSingle | SwapParamsMultihop,
        data: bytes,
        sender: str,
        value: int,
    ) -> str:
        identity, payment = self._prepare_rating(origin, amount)
        self._swap_for_payment(swap_params, payment, sender, value)
        self._record_rating(direction, origin, identity, amount, payment, data, sender)
        return identity

    def _prepare_rating(self, origin: str, amount: int) -> tuple[str, int]:
        if self.is_paused:
            raise ContractPaused()
        if not isinstance(amount, int) or amount <= 0 or amount % RATING_UNIT != 0:
            raise InvalidRatingAmount(amount, RATING_UNIT)

        identity = self.contract(self.immutable_mapping).preview_address(origin)
        return identity, self.preview_payment(amount)

    def _record_rating(
        self,
        direction: RatingDirection,
        origin: str,
        identity: str,
        amount: int,
        payment: int,
        data: bytes,
        sender: str,
    ) -> None:
        ledger = self.token_up if direction is RatingDirection.UP else self.token_down
        self.contract(ledger).mint(identity, amount, sender=self.address)

        self._user_ratings[sender] = self._user_ratings.get(sender, 0) + amount

        event_name = "RatingUpCreated" if direction is RatingDirection.UP else "RatingDownCreated"
        self.emit(event_name, sender=sender, origin=origin, amount=amount, data=data)

        metrics.increment("ratings_created_total", labels={"direction": direction.value})
        metrics.increment("rating_units_minted_total", amount // RATING_UNIT, labels={"direction": direction.value})
        logger.info(
            "Rating %s created for %s", direction.value, identity,
            extra={"sender": sender, "amount": amount, "payment": payment},
        )

    # ==================== SETTLEMENT ====================

    def _collect_payment(self, payment: int, sender: str, value: int) -> None:
        if self.is_native_payment:
            # No change-making: the attached value must be exact
            if value != payment:
                raise InvalidPayment(payment, value)
            if payment:
                self.chain.transfer_native(self.address, self.receiver, payment)
            return

        if value:
            raise InvalidPayment(0, value)
        self._safe_transfer_from(self.payment_token, sender, self.receiver, payment)

    def _swap_for_payment(
        self,
        swap_params: SwapParamsSingle | SwapParamsMultihop,
        payment: int,
        sender: str,
        value: int,
    ) -> None:
        router = self.contract(self.swap_router)
        token_out = router.weth9 if self.is_native_payment else self.payment_token
        native_input = is_zero_address(swap_params.token)
        token_in = router.weth9 if native_input else normalize_address(swap_params.token)

        if native_input:
            budget = value
        else:
            if value:
                raise InvalidPayment(0, value)
            budget = swap_params.amount_in_maximum
            self._safe_transfer_from(token_in, sender, self.address, budget)
            self._call_token(token_in, "approve", self.swap_router, budget)

        balance_before = self.native_balance
        try:
            if isinstance(swap_params, SwapParamsMultihop):
                hops = decode_path(swap_params.path)
                if hops[0][0] != token_out or hops[-1][2] != token_in:
                    raise SwapError(
                        "Path does not connect input token to payment token",
                        details={"token_in": token_in, "token_out": token_out},
                    )
                amount_in = router.exact_output(
                    ExactOutputParams(
                        path=swap_params.path,
                        recipient=self.receiver,
                        amount_out=payment,
                        amount_in_maximum=swap_params.amount_in_maximum,
                    ),
                    sender=self.address,
                    value=budget if native_input else 0,
                )
            else:
                amount_in = router.exact_output_single(
                    ExactOutputSingleParams(
                        token_in=token_in,
                        token_out=token_out,
                        fee=swap_params.fee,
                        recipient=self.receiver,
                        amount_out=payment,
                        amount_in_maximum=swap_params.amount_in_maximum,
                    ),
                    sender=self.address,
                    value=budget if native_input else 0,
                )
        except (SwapError, TokenError, InsufficientNativeBalance) as e:
            raise TransferFailed(token_in, action="swap", cause=e) from e

        if native_input:
            # Router refunds unspent native input to us; hand it back to the caller
            refund = self.native_balance - (balance_before - budget)
            if refund:
                self.chain.transfer_native(self.address, sender, refund)
        else:
            self._call_token(token_in, "approve", self.swap_router, 0)
            if budget > amount_in:
                self._call_token(token_in, "transfer", sender, budget - amount_in)

    def _ledger(self, token: str, action: str) -> TokenLedger:
        ledger = self.contract(token)
        if not isinstance(ledger, TokenLedger):
            raise ContractNotFound(token, expected="token ledger", action=action)
        return ledger

    def _safe_transfer_from(self, token: str, owner: str, to: str, amount: int) -> None:
        try:
            self._ledger(token, "transfer_from").transfer_from(owner, to, amount, sender=self.address)
        except (TokenError, ContractNotFound) as e:
            raise TransferFailed(token, cause=e) from e

    def _call_token(self, token: str, method: str, *args) -> None:
        try:
            getattr(self._ledger(token, method), method)(*args, sender=self.address)
        except (TokenError, ContractNotFound) as e:
            raise TransferFailed(token, action=method, cause=e) from e

    # ==================== ADMINISTRATION ====================

    def _only_owner(self, sender: str, action: str) -> None:
        if sender != self.owner:
            raise OwnableUnauthorizedAccount(sender, action=action)

    @transaction
    def set_receiver(self, receiver, *, sender: str) -> None:
        self._only_owner(sender, "set_receiver")
        if is_zero_address(receiver):
            raise ZeroAddress("receiver", component="immutable_ratings", action="set_receiver")
        self.receiver = normalize_address(receiver)
        self.emit("ReceiverUpdated", receiver=self.receiver)

    @transaction
    def set_payment_token(self, payment_token, *, sender: str) -> None:
        """Change the settlement token; the zero address selects native currency."""
        self._only_owner(sender, "set_payment_token")
        self.payment_token = normalize_address(payment_token)
        self.emit("PaymentTokenUpdated", payment_token=self.payment_token)

    @transaction
    def set_rating_price(self, rating_price: int, *, sender: str) -> None:
        self._only_owner(sender, "set_rating_price")
        if rating_price < 0:
            raise ValueError("Rating price must be non-negative")
        self.rating_price = rating_price
        self.emit("RatingPriceUpdated", rating_price=rating_price)

    @transaction
    def set_is_paused(self, is_paused: bool, *, sender: str) -> None:
        self._only_owner(sender, "set_is_paused")
        self.is_paused = bool(is_paused)
        self.emit("Paused", is_paused=self.is_paused)
        logger.warning("Ratings %s", "paused" if self.is_paused else "unpaused", extra={"owner": sender})

    @transaction
    def recover_erc20(self, token, to, *, sender: str) -> int:
        """
        Move the ledger's whole balance of a token to an address.

        Not gated by pause, so stray funds can be recovered at any time.

        Returns:
            Amount recovered
        """
        self._only_owner(sender, "recover_erc20")
        if is_zero_address(token):
            raise ZeroAddress("token", component="immutable_ratings", action="recover_erc20")
        if is_zero_address(to):
            raise ZeroAddress("to", component="immutable_ratings", action="recover_erc20")

        token = normalize_address(token)
        to = normalize_address(to)
        try:
            ledger = self._ledger(token, "recover_erc20")
            amount = ledger.balance_of(self.address)
            ledger.transfer(to, amount, sender=self.address)
        except (TokenError, ContractNotFound) as e:
            raise TransferFailed(token, action="recover_erc20", cause=e) from e

        self.emit("ERC20Recovered", token=token, to=to, amount=amount)
        logger.info("Recovered %d of %s", amount, token, extra={"to": to})
        return amount

    # ==================== OWNERSHIP ====================

    @transaction
    def transfer_ownership(self, new_owner, *, sender: str) -> None:
        """Start a two-step ownership transfer (zero cancels a pending one)."""
        self._only_owner(sender, "transfer_ownership")
        self.pending_owner = normalize_address(new_owner)
        self.emit("OwnershipTransferStarted", previous_owner=self.owner, new_owner=self.pending_owner)

    @transaction
    def accept_ownership(self, *, sender: str) -> None:
        """Complete a pending transfer; only the pending owner may call this."""
        if sender != self.pending_owner or is_zero_address(self.pending_owner):
            raise OwnableUnauthorizedAccount(sender, action="accept_ownership")
        self._set_owner(sender)

    @transaction
    def renounce_ownership(self, *, sender: str) -> None:
        self._only_owner(sender, "renounce_ownership")
        self._set_owner(ZERO_ADDRESS)

    def _set_owner(self, new_owner: str) -> None:
        previous = self.owner
        self.owner = new_owner
        self.pending_owner = ZERO_ADDRESS
        self.emit("OwnershipTransferred", previous_owner=previous, new_owner=new_owner)
        logger.info("Ownership transferred to %s", new_owner, extra={"previous_owner": previous})
