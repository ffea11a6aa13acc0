"""
Account key resolution.

Normalizes an AccountCredential (raw private key or mnemonic) into the single
key used for nullifier/secret derivation. The resolved key never leaves the
derivation path: it is not logged, not stored, and not placed in events.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Callable, Sequence

import ecdsa

from privacy_pool.core.models import AccountCredential
from privacy_pool.errors import MissingCredentialError, WithdrawalError

SECP256K1_N = ecdsa.SECP256k1.order

MnemonicRestorer = Callable[[Sequence[str]], str]


class WalletError(WithdrawalError):
    """Raised when a credential cannot be turned into a usable key."""


def resolve_account_key(
    credential: AccountCredential,
    restore: MnemonicRestorer | None = None,
) -> str:
    """
    Return the account key for a credential.

    A direct private key wins and is returned verbatim. Otherwise the mnemonic
    is split into words and restored through `restore`
    (default: restore_from_mnemonic).

    Raises:
        MissingCredentialError: neither form is present
    """
    if credential.has_private_key:
        return credential.private_key.get_secret_value().strip()

    if credential.has_mnemonic:
        words = credential.mnemonic.get_secret_value().split()
        return (restore or restore_from_mnemonic)(words)

    raise MissingCredentialError("No account key available for nullifier generation")


def restore_from_mnemonic(words: Sequence[str], passphrase: str = "") -> str:
    """
    Restore the master private key from a BIP39 mnemonic.

    BIP39 seed (PBKDF2-HMAC-SHA512) followed by the BIP32 master key
    (HMAC-SHA512 keyed with "Bitcoin seed"). Word-list checksums are not
    verified here; the wallet layer that issued the mnemonic owns that.

    Returns:
        str: 0x-prefixed 32-byte private key
    """
    if not words:
        raise MissingCredentialError("Mnemonic is empty")
    seed = _mnemonic_to_seed(" ".join(words), passphrase)
    master = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    key = master[:32]
    if not 0 < int.from_bytes(key, "big") < SECP256K1_N:
        raise WalletError("Mnemonic produced an invalid master key")
    return "0x" + key.hex()


# ------------------------------------------------------------------
# BIP39 seed derivation (standard BIP39 PBKDF2)
# ------------------------------------------------------------------

def _mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Derive a 64-byte seed from a BIP39 mnemonic + optional passphrase."""
    mnemonic_bytes = mnemonic.encode("utf-8")
    salt = ("mnemonic" + passphrase).encode("utf-8")
    return hashlib.pbkdf2_hmac("sha512", mnemonic_bytes, salt, 2048)
