"""
Immutable Ratings - Address Utilities

Keccak-256 hashing and EIP-55 address formatting shared by the chain
environment, the identity registry and the token ledgers.

All addresses handled by the system are 20-byte values rendered as
checksummed hex strings ("0x" + 40 hex digits). Inputs are accepted in any
hex case and normalized before being used as dictionary keys.
"""

import re

from Crypto.Hash import keccak

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

ADDRESS_LENGTH = 20

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


def keccak256(data: bytes) -> bytes:
    """
    Compute the Keccak-256 digest used by the EVM.

    This is the original Keccak padding, not the NIST SHA3-256 variant
    provided by hashlib.

    Args:
        data: Bytes to hash

    Returns:
        32-byte digest
    """
    hasher = keccak.new(digest_bits=256)
    hasher.update(data)
    return hasher.digest()


def is_address(value) -> bool:
    """Check whether a value is a well-formed hex address string."""
    return isinstance(value, str) and bool(_HEX_ADDRESS.match(value))


def to_checksum_address(value: str | bytes) -> str:
    """
    Format an address with EIP-55 mixed-case checksum.

    Args:
        value: Hex address string (any case) or 20 raw bytes

    Returns:
        Checksummed address string

    Raises:
        ValueError: If the value is not a 20-byte address
    """
    if isinstance(value, bytes):
        if len(value) != ADDRESS_LENGTH:
            raise ValueError(f"Address must be {ADDRESS_LENGTH} bytes, got {len(value)}")
        hex_address = value.hex()
    elif is_address(value):
        hex_address = value[2:].lower()
    else:
        raise ValueError(f"Invalid address: {value!r}")

    digest = keccak256(hex_address.encode("ascii")).hex()
    checksummed = "".join(
        char.upper() if int(digest[i], 16) >= 8 else char
        for i, char in enumerate(hex_address)
    )
    return "0x" + checksummed


def normalize_address(value) -> str:
    """
    Normalize an address or contract reference to its checksummed form.

    Objects exposing an ``address`` attribute (contracts) are accepted so
    callers can pass either a contract or its address.

    Raises:
        ValueError: If the value is not a valid address
    """
    address = getattr(value, "address", value)
    return to_checksum_address(address)


def is_zero_address(value) -> bool:
    """Check whether a value is the zero address sentinel."""
    address = getattr(value, "address", value)
    if isinstance(address, bytes):
        return address == bytes(ADDRESS_LENGTH)
    return is_address(address) and int(address, 16) == 0


def address_from_hash(digest: bytes) -> str:
    """Take the low-order 20 bytes of a 32-byte hash as an address."""
    return to_checksum_address(digest[-ADDRESS_LENGTH:])
