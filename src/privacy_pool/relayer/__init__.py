"""Relay call encoding and ERC-4337 bundler submission."""

from privacy_pool.relayer.bundler import BundlerClient, BundlerError
from privacy_pool.relayer.calldata import (
    create_withdrawal_data,
    encode_relay_call_data,
    format_proof_for_contract,
)

__all__ = [
    "BundlerClient",
    "BundlerError",
    "create_withdrawal_data",
    "encode_relay_call_data",
    "format_proof_for_contract",
]
