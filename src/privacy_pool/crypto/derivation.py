"""
Deterministic nullifier / secret derivation.

A note's (nullifier, secret) pair is a pure function of
(account key, pool address, note index). Replaying the same triple always
reproduces the same pair, which is what lets a recovered account re-derive
the spend proofs for its existing notes.

Derivation:
    nullifier = keccak256(abi.encode("privacy-pool/nullifier", key, pool, index)) mod p
    secret    = keccak256(abi.encode("privacy-pool/secret",    key, pool, index)) mod p
"""

from __future__ import annotations

from typing import Protocol

from eth_abi import encode
from eth_utils import is_hex, to_bytes, to_checksum_address

from privacy_pool.crypto.field import hash_to_field

NULLIFIER_DOMAIN = "privacy-pool/nullifier"
SECRET_DOMAIN = "privacy-pool/secret"


class SecretDeriver(Protocol):
    def derive_nullifier(self, account_key: str, pool_address: str, index: int) -> int: ...

    def derive_secret(self, account_key: str, pool_address: str, index: int) -> int: ...


class KeccakSecretDeriver:
    """Default deriver: domain-separated keccak256 over the ABI-encoded triple."""

    def derive_nullifier(self, account_key: str, pool_address: str, index: int) -> int:
        return self._derive(NULLIFIER_DOMAIN, account_key, pool_address, index)

    def derive_secret(self, account_key: str, pool_address: str, index: int) -> int:
        return self._derive(SECRET_DOMAIN, account_key, pool_address, index)

    @staticmethod
    def _derive(domain: str, account_key: str, pool_address: str, index: int) -> int:
        if index < 0:
            raise ValueError(f"Note index must be non-negative, got {index}")
        payload = encode(
            ["string", "bytes", "address", "uint256"],
            [domain, _key_bytes(account_key), to_checksum_address(pool_address), index],
        )
        return hash_to_field(payload)


def _key_bytes(account_key: str) -> bytes:
    # Raw private keys are hex; anything else is taken as UTF-8 text
    if is_hex(account_key):
        return to_bytes(hexstr=account_key)
    return account_key.encode("utf-8")


def derive_note_secrets(
    deriver: SecretDeriver, account_key: str, pool_address: str, index: int
) -> tuple[int, int]:
    """Return the (nullifier, secret) pair for one note index."""
    return (
        deriver.derive_nullifier(account_key, pool_address, index),
        deriver.derive_secret(account_key, pool_address, index),
    )
