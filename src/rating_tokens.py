"""
Immutable Ratings - Token Balance Ledgers

Minimal fungible-balance ledgers with role-gated minting.

The rating ledger mints into two instances: Thumbs Up (TUP) and Thumbs Down
(TDN). Minting authority is an explicit role membership granted by the
ledger's admin (the deployer) after deployment; nothing is trusted
implicitly.

MockERC20 is an ungated variant used as a payment/input token on local
chains, mirroring the mock USDC and DEGEN tokens of the deploy scripts.
"""

from addresses import ZERO_ADDRESS, is_zero_address, keccak256, normalize_address
from chain import Chain, Contract, transaction
from monitoring import get_logger
from ratings_exceptions import (
    AccessControlUnauthorizedAccount,
    ERC20InsufficientAllowance,
    ERC20InsufficientBalance,
    ERC20InvalidReceiver,
)

logger = get_logger(__name__)

DEFAULT_ADMIN_ROLE = "0x" + "00" * 32
MINTER_ROLE = "0x" + keccak256(b"MINTER_ROLE").hex()


class TokenLedger(Contract):
    """
    Fungible balance ledger with access-controlled minting.

    Roles:
        DEFAULT_ADMIN_ROLE: may grant and revoke roles (held by the deployer)
        MINTER_ROLE: may mint new balance
    """

    DEFAULT_ADMIN_ROLE = DEFAULT_ADMIN_ROLE
    MINTER_ROLE = MINTER_ROLE

    STATE_FIELDS = ("total_supply", "_balances", "_allowances", "_roles")

    def __init__(self, chain: Chain, deployer, name: str, symbol: str, decimals: int = 18):
        super().__init__(chain, deployer)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals

        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._roles: dict[str, frozenset[str]] = {}

        self._grant_role(DEFAULT_ADMIN_ROLE, self.deployer, self.deployer)

    # ==================== BALANCES ====================

    def balance_of(self, account) -> int:
        return self._balances.get(normalize_address(account), 0)

    def allowance(self, owner, spender) -> int:
        return self._allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    @transaction
    def transfer(self, to, amount: int, *, sender: str) -> bool:
        self._transfer(sender, normalize_address(to), amount)
        return True

    @transaction
    def approve(self, spender, amount: int, *, sender: str) -> bool:
        spender = normalize_address(spender)
        self._allowances[(sender, spender)] = amount
        self.emit("Approval", owner=sender, spender=spender, value=amount)
        return True

    @transaction
    def transfer_from(self, owner, to, amount: int, *, sender: str) -> bool:
        owner = normalize_address(owner)
        current = self.allowance(owner, sender)
        if current < amount:
            raise ERC20InsufficientAllowance(sender, current, amount)
        self._allowances[(owner, sender)] = current - amount
        self._transfer(owner, normalize_address(to), amount)
        return True

    def _transfer(self, from_: str, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        if is_zero_address(to):
            raise ERC20InvalidReceiver(to)
        balance = self._balances.get(from_, 0)
        if balance < amount:
            raise ERC20InsufficientBalance(from_, balance, amount)
        self._balances[from_] = balance - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self.emit("Transfer", from_=from_, to=to, value=amount)

    # ==================== MINTING ====================

    @transaction
    def mint(self, to, amount: int, *, sender: str) -> None:
        """
        Mint new balance to an account.

        Raises:
            AccessControlUnauthorizedAccount: If the caller lacks MINTER_ROLE
            ERC20InvalidReceiver: If minting to the zero address
        """
        self._check_role(MINTER_ROLE, sender, action="mint")
        self._mint(normalize_address(to), amount)

    def _mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        if is_zero_address(to):
            raise ERC20InvalidReceiver(to)
        self.total_supply += amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self.emit("Transfer", from_=ZERO_ADDRESS, to=to, value=amount)

    # ==================== ACCESS CONTROL ====================

    def has_role(self, role: str, account) -> bool:
        return normalize_address(account) in self._roles.get(role, frozenset())

    @transaction
    def grant_role(self, role: str, account, *, sender: str) -> None:
        self._check_role(DEFAULT_ADMIN_ROLE, sender, action="grant_role")
        self._grant_role(role, normalize_address(account), sender)

    @transaction
    def revoke_role(self, role: str, account, *, sender: str) -> None:
        self._check_role(DEFAULT_ADMIN_ROLE, sender, action="revoke_role")
        self._revoke_role(role, normalize_address(account), sender)

    @transaction
    def renounce_role(self, role: str, *, sender: str) -> None:
        self._revoke_role(role, sender, sender)

    def _check_role(self, role: str, account: str, action: str) -> None:
        if not self.has_role(role, account):
            raise AccessControlUnauthorizedAccount(account, role, action=action)

    def _grant_role(self, role: str, account: str, sender: str) -> None:
        members = self._roles.get(role, frozenset())
        if account not in members:
            self._roles[role] = members | {account}
            self.emit("RoleGranted", role=role, account=account, sender=sender)
            logger.info("Granted role %s on %s", role[:10], self.symbol, extra={"account": account})

    def _revoke_role(self, role: str, account: str, sender: str) -> None:
        members = self._roles.get(role, frozenset())
        if account in members:
            self._roles[role] = members - {account}
            self.emit("RoleRevoked", role=role, account=account, sender=sender)


class ThumbsUp(TokenLedger):
    """The "up" rating ledger."""

    def __init__(self, chain: Chain, deployer):
        super().__init__(chain, deployer, name="Thumbs Up", symbol="TUP", decimals=18)


class ThumbsDown(TokenLedger):
    """The "down" rating ledger."""

    def __init__(self, chain: Chain, deployer):
        super().__init__(chain, deployer, name="Thumbs Down", symbol="TDN", decimals=18)


class MockERC20(TokenLedger):
    """Payment token for local chains; anyone may mint."""

    @transaction
    def mint(self, to, amount: int, *, sender: str) -> None:
        self._mint(normalize_address(to), amount)
