"""
Scalar field helpers.

Every value fed to the withdrawal circuit is an element of the BN254 scalar
field. Hash digests are interpreted as unsigned big-endian integers and
reduced modulo the field prime.
"""

from __future__ import annotations

from eth_utils import keccak

from privacy_pool.config import SNARK_SCALAR_FIELD


def reduce_to_field(digest: bytes) -> int:
    """Interpret `digest` as an unsigned big-endian integer and reduce it into the field."""
    return int.from_bytes(digest, "big") % SNARK_SCALAR_FIELD


def hash_to_field(data: bytes) -> int:
    """keccak256(data) reduced into the scalar field."""
    return reduce_to_field(keccak(data))


def is_field_element(value: int) -> bool:
    return 0 <= value < SNARK_SCALAR_FIELD
