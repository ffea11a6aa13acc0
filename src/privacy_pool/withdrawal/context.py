"""
Withdrawal context calculation.

The context scalar binds a proof to one recipient / fee / pool combination:

    context = keccak256(abi.encode((address processooor, bytes data), uint256 scope)) mod p

It is recomputed for every request and never cached. The same step reserves
the next note index and derives the (nullifier, secret) pairs for the spent
note and the change note.
"""

from __future__ import annotations

import logging

from eth_abi import encode
from eth_abi.exceptions import EncodingError as AbiEncodingError

from privacy_pool.config import WithdrawalConfig
from privacy_pool.core.models import FetchedWithdrawalData, WithdrawalContext, WithdrawalData, WithdrawalRequest
from privacy_pool.core.note_index import NoteIndexTracker
from privacy_pool.core.wallet import MnemonicRestorer, resolve_account_key
from privacy_pool.crypto.derivation import SecretDeriver, derive_note_secrets
from privacy_pool.crypto.field import hash_to_field
from privacy_pool.errors import EncodingError, IndexTrackerError, InvalidNoteError
from privacy_pool.relayer.calldata import WITHDRAWAL_TUPLE, create_withdrawal_data

logger = logging.getLogger("privacy_pool.withdrawal.context")


def compute_context(withdrawal_data: WithdrawalData, pool_scope: int) -> int:
    """Hash the Withdrawal struct and pool scope into the context scalar."""
    try:
        encoded = encode([WITHDRAWAL_TUPLE, "uint256"], [withdrawal_data.as_abi_tuple(), pool_scope])
    except (AbiEncodingError, ValueError, TypeError) as err:
        raise EncodingError(f"Cannot encode withdrawal context: {err}") from err
    return hash_to_field(encoded)


def reserve_note_index(
    tracker: NoteIndexTracker, account_key: str, pool_address: str, min_index: int = 0
) -> int:
    """
    Ask the tracker for the next index exactly once, never below `min_index`.

    Any tracker failure, or an index under the floor, is an IndexTrackerError.
    """
    try:
        index = tracker.reserve_next_index(account_key, pool_address, min_index=min_index)
    except IndexTrackerError:
        raise
    except Exception as err:
        raise IndexTrackerError(f"Note index tracker unavailable: {err}") from err
    if not isinstance(index, int) or index < 0:
        raise IndexTrackerError(f"Note index tracker returned an invalid index: {index!r}")
    if index < min_index:
        raise IndexTrackerError(f"Note index tracker returned {index}, below the required minimum {min_index}")
    return index


def calculate_withdrawal_context(
    request: WithdrawalRequest,
    fetched: FetchedWithdrawalData,
    *,
    tracker: NoteIndexTracker,
    deriver: SecretDeriver,
    config: WithdrawalConfig,
    restore: MnemonicRestorer | None = None,
) -> WithdrawalContext:
    """
    Build the WithdrawalContext for one request.

    Order matters: the key is resolved before the tracker is consulted, and
    the tracker is consulted exactly once, right before the new pair is derived.

    Raises:
        MissingCredentialError: no usable credential
        IndexTrackerError:      the tracker could not reserve an index
    """
    if request.note is None:
        raise InvalidNoteError("Invalid note data: missing note")
    note = request.note

    withdrawal_data = create_withdrawal_data(
        recipient=request.recipient_address,
        processor=config.processor_address,
        fee_recipient=config.fee_recipient_address,
        relay_fee_bps=config.relay_fee_bps,
    )
    context = compute_context(withdrawal_data, fetched.pool_scope)

    account_key = resolve_account_key(request.account, restore=restore)
    pool_address = config.pool_address

    # The change note must never reuse the spent note's index
    next_note_index = reserve_note_index(tracker, account_key, pool_address, min_index=note.note_index + 1)
    logger.debug(f"Next note index: {next_note_index}")

    new_nullifier, new_secret = derive_note_secrets(deriver, account_key, pool_address, next_note_index)
    existing_nullifier, existing_secret = derive_note_secrets(
        deriver, account_key, pool_address, note.note_index
    )

    return WithdrawalContext(
        state_tree_leaves=fetched.state_tree_leaves,
        asp_data=fetched.asp_data,
        pool_scope=fetched.pool_scope,
        withdrawal_data=withdrawal_data,
        context=context,
        new_nullifier=new_nullifier,
        new_secret=new_secret,
        existing_nullifier=existing_nullifier,
        existing_secret=existing_secret,
        next_note_index=next_note_index,
    )
