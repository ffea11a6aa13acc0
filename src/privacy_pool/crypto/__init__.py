"""
privacy_pool.crypto: field arithmetic, secret derivation and proving.

Provides:
- BN254 scalar-field reduction of keccak digests
- Deterministic (nullifier, secret) derivation per note index
- The external Groth16 withdrawal prover adapter
"""

from privacy_pool.crypto.derivation import KeccakSecretDeriver, derive_note_secrets
from privacy_pool.crypto.field import SNARK_SCALAR_FIELD, hash_to_field, reduce_to_field
from privacy_pool.crypto.prover import SubprocessProver

__all__ = [
    "KeccakSecretDeriver",
    "SNARK_SCALAR_FIELD",
    "SubprocessProver",
    "derive_note_secrets",
    "hash_to_field",
    "reduce_to_field",
]
