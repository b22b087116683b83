"""
Immutable Ratings - Exception Hierarchy

Every failure aborts the whole call it happens in: the chain environment
rolls back all effects and re-raises one of these exceptions. Each error
type maps to one distinguishable cause so callers can branch on it
(not-found vs. already-exists vs. paused vs. bad-amount vs.
payment-mismatch vs. unauthorized).

All exceptions carry structured context for logging and API responses.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for ratings errors."""
    LOW = "low"           # Expected caller mistakes
    MEDIUM = "medium"     # Rejected operations worth monitoring
    HIGH = "high"         # Authorization and settlement failures
    CRITICAL = "critical" # Configuration that prevents operation


@dataclass
class ErrorContext:
    """Structured context for error tracking and debugging."""
    component: str
    action: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: dict[str, Any] = field(default_factory=dict)
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "component": self.component,
            "action": self.action,
            "timestamp": self.timestamp,
            "details": self.details,
            "severity": self.severity.value
        }


class RatingsError(Exception):
    """
    Base exception for all Immutable Ratings errors.

    Includes structured error context for improved debugging
    and integration with monitoring systems.
    """

    def __init__(
        self,
        message: str,
        component: str = "unknown",
        action: str = "unknown",
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        super().__init__(message)
        self.message = message
        self.context = ErrorContext(
            component=component,
            action=action,
            severity=severity,
            details=details or {}
        )
        self.cause = cause

        if cause:
            self.__cause__ = cause

    @property
    def details(self) -> dict[str, Any]:
        return self.context.details

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "message": self.message,
            **self.context.to_dict()
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }
        return result

    def __str__(self) -> str:
        base = f"[{self.context.component}:{self.context.action}] {self.message}"
        if self.cause:
            base += f" (caused by: {self.cause})"
        return base


# =============================================================================
# Argument Errors
# =============================================================================

class ZeroAddress(RatingsError):
    """Raised when a required address argument is the zero address."""

    def __init__(self, argument: str, component: str = "unknown", action: str = "unknown"):
        super().__init__(
            message=f"Address argument '{argument}' must not be the zero address",
            component=component,
            action=action,
            severity=ErrorSeverity.LOW,
            details={"argument": argument}
        )
        self.argument = argument


# =============================================================================
# Identity Mapping Errors
# =============================================================================

class MappingError(RatingsError):
    """Base class for identity mapping registry errors."""

    def __init__(
        self,
        message: str,
        action: str,
        details: dict[str, Any] | None = None,
        severity: ErrorSeverity = ErrorSeverity.LOW
    ):
        super().__init__(
            message=message,
            component="identity_mapping",
            action=action,
            severity=severity,
            details=details
        )


class EmptyOrigin(MappingError):
    """Raised when an origin is the empty string."""

    def __init__(self, action: str = "preview_address"):
        super().__init__("Origin must not be empty", action=action)


class AlreadyMapped(MappingError):
    """Raised when registering an origin (or identity) that is already bound."""

    def __init__(self, origin: str, identity: str, action: str = "create_mapping"):
        super().__init__(
            f"Origin '{origin}' is already mapped",
            action=action,
            details={"origin": origin, "identity": identity},
            severity=ErrorSeverity.MEDIUM
        )
        self.origin = origin
        self.identity = identity


class OriginNotMapped(MappingError):
    """Raised when looking up an origin that was never registered."""

    def __init__(self, origin: str, action: str = "address_of"):
        super().__init__(
            f"Origin '{origin}' is not mapped",
            action=action,
            details={"origin": origin}
        )
        self.origin = origin


class AddressNotMapped(MappingError):
    """Raised when looking up an identity that was never registered."""

    def __init__(self, identity: str, action: str = "origin_of"):
        super().__init__(
            f"Address {identity} is not mapped",
            action=action,
            details={"identity": identity}
        )
        self.identity = identity


# =============================================================================
# Rating Ledger Errors
# =============================================================================

class InvalidRatingAmount(RatingsError):
    """Raised when a rating amount is zero or not a multiple of the rating unit."""

    def __init__(self, amount: int, unit: int):
        super().__init__(
            message=f"Rating amount {amount} must be a positive multiple of {unit}",
            component="immutable_ratings",
            action="create_rating",
            severity=ErrorSeverity.LOW,
            details={"amount": amount, "unit": unit}
        )
        self.amount = amount


class InvalidPayment(RatingsError):
    """Raised when attached native value does not equal the required payment."""

    def __init__(self, expected: int, received: int):
        super().__init__(
            message=f"Expected payment of {expected}, received {received}",
            component="immutable_ratings",
            action="collect_payment",
            severity=ErrorSeverity.LOW,
            details={"expected": expected, "received": received}
        )
        self.expected = expected
        self.received = received


class ContractPaused(RatingsError):
    """Raised when a minting entry point is called while paused."""

    def __init__(self, action: str = "create_rating"):
        super().__init__(
            message="Contract is paused",
            component="immutable_ratings",
            action=action,
            severity=ErrorSeverity.MEDIUM
        )


class TransferFailed(RatingsError):
    """
    Raised when pulling funds or settling a swap fails.

    The reason code mirrors the settlement helper's revert string ("STF",
    safe transfer failed) so callers can match on it.
    """

    reason = "STF"

    def __init__(
        self,
        token: str,
        action: str = "safe_transfer_from",
        cause: Exception | None = None
    ):
        super().__init__(
            message=self.reason,
            component="settlement",
            action=action,
            severity=ErrorSeverity.HIGH,
            details={"token": token},
            cause=cause
        )
        self.token = token


# =============================================================================
# Authorization Errors
# =============================================================================

class OwnableUnauthorizedAccount(RatingsError):
    """Raised when a non-owner calls an owner-only operation."""

    def __init__(self, account: str, action: str = "unknown"):
        super().__init__(
            message=f"Account {account} is not authorized",
            component="ownable",
            action=action,
            severity=ErrorSeverity.HIGH,
            details={"account": account}
        )
        self.account = account


class AccessControlUnauthorizedAccount(RatingsError):
    """Raised when an account lacks the role a token ledger operation requires."""

    def __init__(self, account: str, role: str, action: str = "unknown"):
        super().__init__(
            message=f"Account {account} is missing role {role}",
            component="access_control",
            action=action,
            severity=ErrorSeverity.HIGH,
            details={"account": account, "role": role}
        )
        self.account = account
        self.role = role


# =============================================================================
# Execution Environment Errors
# =============================================================================

class ReentrancyGuardReentrantCall(RatingsError):
    """Raised when a guarded entry point is re-entered during an in-flight call."""

    def __init__(self, contract: str, action: str):
        super().__init__(
            message="Reentrant call",
            component="reentrancy_guard",
            action=action,
            severity=ErrorSeverity.CRITICAL,
            details={"contract": contract}
        )


class NonPayableFunction(RatingsError):
    """Raised when native value is attached to a non-payable operation."""

    def __init__(self, action: str, value: int):
        super().__init__(
            message=f"Operation '{action}' does not accept value",
            component="chain",
            action=action,
            severity=ErrorSeverity.LOW,
            details={"value": value}
        )


class InsufficientNativeBalance(RatingsError):
    """Raised when an account cannot cover a native currency transfer."""

    def __init__(self, account: str, balance: int, needed: int):
        super().__init__(
            message=f"Account {account} has {balance}, needs {needed}",
            component="chain",
            action="transfer_native",
            severity=ErrorSeverity.MEDIUM,
            details={"account": account, "balance": balance, "needed": needed}
        )
        self.account = account


class ContractNotFound(RatingsError):
    """Raised when an address does not host the contract a call expects."""

    def __init__(self, address: str, expected: str = "contract", action: str = "contract_at"):
        super().__init__(
            message=f"No {expected} deployed at {address}",
            component="chain",
            action=action,
            severity=ErrorSeverity.LOW,
            details={"address": address, "expected": expected}
        )
        self.address = address


# =============================================================================
# Token Ledger Errors
# =============================================================================

class TokenError(RatingsError):
    """Base class for token balance ledger errors."""

    def __init__(self, message: str, action: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            component="token_ledger",
            action=action,
            severity=ErrorSeverity.MEDIUM,
            details=details
        )


class ERC20InsufficientBalance(TokenError):
    """Raised when a holder's balance cannot cover a transfer."""

    def __init__(self, sender: str, balance: int, needed: int):
        super().__init__(
            f"Insufficient balance: {balance} < {needed}",
            action="transfer",
            details={"sender": sender, "balance": balance, "needed": needed}
        )


class ERC20InsufficientAllowance(TokenError):
    """Raised when a spender's allowance cannot cover a transfer."""

    def __init__(self, spender: str, allowance: int, needed: int):
        super().__init__(
            f"Insufficient allowance: {allowance} < {needed}",
            action="transfer_from",
            details={"spender": spender, "allowance": allowance, "needed": needed}
        )


class ERC20InvalidReceiver(TokenError):
    """Raised when tokens would be sent or minted to the zero address."""

    def __init__(self, receiver: str):
        super().__init__(
            f"Invalid receiver {receiver}",
            action="transfer",
            details={"receiver": receiver}
        )


# =============================================================================
# Swap Errors
# =============================================================================

class SwapError(RatingsError):
    """Raised when the swap router cannot produce the requested output."""

    def __init__(self, message: str, action: str = "exact_output", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            component="swap_router",
            action=action,
            severity=ErrorSeverity.MEDIUM,
            details=details
        )


class InvalidPath(SwapError):
    """Raised when an encoded swap path is malformed."""

    def __init__(self, length: int):
        super().__init__(
            f"Invalid swap path of {length} bytes",
            action="decode_path",
            details={"length": length}
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(RatingsError):
    """Raised when deployment configuration is missing or malformed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            component="deployment",
            action="configure",
            severity=ErrorSeverity.CRITICAL,
            details=details
        )
