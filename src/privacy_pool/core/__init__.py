"""core module init"""
from privacy_pool.core.address import (
    AddressError,
    is_valid_address,
    normalize_address,
    validate_address,
)
from privacy_pool.core.indexer import IndexerClient, IndexerError
from privacy_pool.core.models import (
    AccountCredential,
    ASPData,
    Note,
    StateTreeLeaf,
    WithdrawalContext,
    WithdrawalRequest,
)
from privacy_pool.core.note_index import InMemoryNoteIndexTracker, JsonFileNoteIndexTracker
from privacy_pool.core.rpc import JsonRpcClient, PoolContract, RpcError
from privacy_pool.core.wallet import WalletError, resolve_account_key

__all__ = [
    "ASPData",
    "AccountCredential",
    "AddressError",
    "InMemoryNoteIndexTracker",
    "IndexerClient",
    "IndexerError",
    "JsonFileNoteIndexTracker",
    "JsonRpcClient",
    "Note",
    "PoolContract",
    "RpcError",
    "StateTreeLeaf",
    "WalletError",
    "WithdrawalContext",
    "WithdrawalRequest",
    "is_valid_address",
    "normalize_address",
    "resolve_account_key",
    "validate_address",
]
