"""
EVM address utilities: validation and checksum normalization.

Address format: 0x + 40 hex characters (20 bytes).
Mixed-case addresses must carry a valid EIP-55 checksum; all-lowercase and
all-uppercase addresses are accepted as unchecksummed.

Reference: https://eips.ethereum.org/EIPS/eip-55
"""

from __future__ import annotations

from eth_utils import is_address, is_hex_address, to_checksum_address


class AddressError(Exception):
    """Raised for invalid EVM addresses."""

    pass


def validate_address(address: str) -> bool:
    """
    Validate an EVM address (shape + EIP-55 checksum when mixed-case).

    Args:
        address: hex address string

    Returns:
        True if valid

    Raises:
        AddressError: if the address is malformed or has a bad checksum
    """
    if not isinstance(address, str) or not address:
        raise AddressError(f"Address must be a non-empty string, got {address!r}")

    if not is_hex_address(address):
        raise AddressError(f"Not a 20-byte hex address: {address!r}")

    if not is_address(address):
        raise AddressError(f"Checksum mismatch: {address}")

    return True


def is_valid_address(address: str) -> bool:
    """
    Check if an EVM address is valid without raising exceptions.

    Returns:
        bool: True if valid, False otherwise
    """
    try:
        return validate_address(address)
    except AddressError:
        return False


def normalize_address(address: str) -> str:
    """Validate and return the EIP-55 checksummed form."""
    validate_address(address)
    return to_checksum_address(address)
