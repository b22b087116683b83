"""
Immutable Ratings - Identity Mapping Registry

Gives every origin (an arbitrary non-empty string such as a URL) exactly one
deterministic pseudonymous address, and records a one-time, immutable
origin <-> identity <-> creator association.

Derivation rule (changing it breaks every previously derived identity):

    identity = keccak256(utf8(SEED) || utf8(origin))[12:32]

The seed and origin are concatenated with no separator and no length
prefix, hashed with Keccak-256, and the low-order 20 bytes become the
address, rendered with the EIP-55 checksum.

Derivation never needs a registration: ``preview_address`` works for any
origin, which is what the rating ledger mints against. Registration is a
separate one-way step (Unmapped -> Mapped) that records who created it.
"""

from dataclasses import asdict, dataclass
from typing import Any

from addresses import address_from_hash, is_zero_address, keccak256, normalize_address
from chain import Chain, Contract, transaction
from monitoring import get_logger
from ratings_exceptions import (
    AddressNotMapped,
    AlreadyMapped,
    EmptyOrigin,
    OriginNotMapped,
    ZeroAddress,
)

logger = get_logger(__name__)

SEED = "Immutable_Ratings_by_GM_EB_MB"


def derive_identity(origin: str, seed: str = SEED) -> str:
    """
    Derive the identity address of an origin.

    Args:
        origin: Non-empty origin string
        seed: Domain-separation seed

    Returns:
        Checksummed identity address

    Raises:
        EmptyOrigin: If origin is empty
    """
    if not isinstance(origin, str):
        raise TypeError(f"Origin must be a string, got {type(origin).__name__}")
    if not origin:
        raise EmptyOrigin()
    return address_from_hash(keccak256(seed.encode("utf-8") + origin.encode("utf-8")))


@dataclass(frozen=True)
class MappingRecord:
    """An immutable origin <-> identity <-> creator association."""
    origin: str
    identity: str
    creator: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ImmutableMapping(Contract):
    """
    One-time registry of origin to identity mappings.

    Records are created once and never updated or deleted.
    """

    SEED = SEED

    STATE_FIELDS = ("_identity_of_origin", "_records")

    def __init__(self, chain: Chain, deployer):
        super().__init__(chain, deployer)
        self._identity_of_origin: dict[str, str] = {}
        self._records: dict[str, MappingRecord] = {}

    # ==================== DERIVATION ====================

    def preview_address(self, origin: str) -> str:
        """Derive the identity of an origin without registering it."""
        return derive_identity(origin, self.SEED)

    # ==================== REGISTRATION ====================

    @transaction
    def create_mapping(self, origin: str, *, sender: str) -> str:
        """
        Register an origin with the caller as creator.

        Returns:
            The origin's identity

        Raises:
            EmptyOrigin: If origin is empty
            AlreadyMapped: If the origin is already registered
        """
        return self._create_mapping(origin, sender, action="create_mapping")

    @transaction
    def create_mapping_for(self, origin: str, creator: str, *, sender: str) -> str:
        """
        Register an origin attributed to an explicit creator.

        Raises:
            ZeroAddress: If creator is the zero address
            EmptyOrigin: If origin is empty
            AlreadyMapped: If the origin is already registered
        """
        if is_zero_address(creator):
            raise ZeroAddress("creator", component="identity_mapping", action="create_mapping_for")
        return self._create_mapping(origin, normalize_address(creator), action="create_mapping_for")

    def _create_mapping(self, origin: str, creator: str, action: str) -> str:
        identity = self.preview_address(origin)

        if origin in self._identity_of_origin:
            raise AlreadyMapped(origin, identity, action=action)
        # A derived identity is never rebound to a second origin
        if identity in self._records:
            raise AlreadyMapped(origin, identity, action=action)

        record = MappingRecord(origin=origin, identity=identity, creator=creator)
        self._identity_of_origin[origin] = identity
        self._records[identity] = record

        self.emit("MappingCreated", origin=origin, identity=identity, creator=creator)
        logger.info("Mapped origin to %s", identity, extra={"origin": origin, "creator": creator})
        return identity

    # ==================== LOOKUPS ====================

    def is_origin_mapped(self, origin: str) -> bool:
        return origin in self._identity_of_origin

    def address_of(self, origin: str) -> str:
        """Get the registered identity of an origin (OriginNotMapped if absent)."""
        identity = self._identity_of_origin.get(origin)
        if identity is None:
            raise OriginNotMapped(origin, action="address_of")
        return identity

    def origin_of(self, identity: str) -> str:
        """Get the registered origin of an identity (AddressNotMapped if absent)."""
        return self._record_of(identity, action="origin_of").origin

    def creator_of(self, identity: str) -> str:
        return self._record_of(identity, action="creator_of").creator

    def origin_creator_of(self, origin: str) -> str:
        identity = self._identity_of_origin.get(origin)
        if identity is None:
            raise OriginNotMapped(origin, action="origin_creator_of")
        return self._records[identity].creator

    def get_mapping(self, origin: str) -> MappingRecord:
        identity = self._identity_of_origin.get(origin)
        if identity is None:
            raise OriginNotMapped(origin, action="get_mapping")
        return self._records[identity]

    def _record_of(self, identity: str, action: str) -> MappingRecord:
        try:
            key = normalize_address(identity)
        except ValueError:
            raise AddressNotMapped(str(identity), action=action) from None
        record = self._records.get(key)
        if record is None:
            raise AddressNotMapped(key, action=action)
        return record

    @property
    def mapping_count(self) -> int:
        return len(self._records)
