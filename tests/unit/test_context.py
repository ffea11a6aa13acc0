"""
Unit tests for context calculation.
"""

from unittest.mock import MagicMock

import pytest
from eth_abi import encode
from eth_utils import keccak

from conftest import COMMITMENT, LABEL, POOL, PRIVATE_KEY, RECIPIENT, SCOPE
from privacy_pool.config import SNARK_SCALAR_FIELD, WithdrawalConfig
from privacy_pool.core.models import ASPData, FetchedWithdrawalData, StateTreeLeaf
from privacy_pool.core.note_index import InMemoryNoteIndexTracker
from privacy_pool.crypto.derivation import KeccakSecretDeriver, derive_note_secrets
from privacy_pool.errors import IndexTrackerError, MissingCredentialError
from privacy_pool.relayer.calldata import create_withdrawal_data
from privacy_pool.withdrawal.context import (
    calculate_withdrawal_context,
    compute_context,
    reserve_note_index,
)


def make_fetched(scope=SCOPE):
    return FetchedWithdrawalData(
        state_tree_leaves=[StateTreeLeaf(leaf_index=0, leaf_value=COMMITMENT)],
        asp_data=ASPData(approved_labels=[LABEL]),
        pool_scope=scope,
    )


def calculate(request, tracker=None, config=None, fetched=None):
    return calculate_withdrawal_context(
        request,
        fetched or make_fetched(),
        tracker=tracker or InMemoryNoteIndexTracker(),
        deriver=KeccakSecretDeriver(),
        config=config or WithdrawalConfig(),
    )


def test_compute_context_matches_abi_hash():
    config = WithdrawalConfig()
    withdrawal = create_withdrawal_data(
        RECIPIENT, config.processor_address, config.fee_recipient_address, config.relay_fee_bps
    )
    expected = int.from_bytes(
        keccak(encode(["(address,bytes)", "uint256"], [withdrawal.as_abi_tuple(), SCOPE])), "big"
    ) % SNARK_SCALAR_FIELD
    assert compute_context(withdrawal, SCOPE) == expected


def test_context_is_deterministic(withdrawal_request):
    first = calculate(withdrawal_request)
    second = calculate(withdrawal_request)
    assert first.context == second.context
    assert first.next_note_index == second.next_note_index == 1
    assert first.new_nullifier == second.new_nullifier
    assert first.new_secret == second.new_secret


def test_context_changes_with_scope(withdrawal_request):
    assert calculate(withdrawal_request).context != calculate(
        withdrawal_request, fetched=make_fetched(scope=SCOPE + 1)
    ).context


def test_context_changes_with_fee(withdrawal_request):
    assert calculate(withdrawal_request).context != calculate(
        withdrawal_request, config=WithdrawalConfig(relay_fee_bps=500)
    ).context


def test_pairs_derived_at_expected_indices(withdrawal_request):
    tracker = InMemoryNoteIndexTracker()
    tracker.record_used_index(PRIVATE_KEY, POOL, 2)
    ctx = calculate(withdrawal_request, tracker=tracker)

    deriver = KeccakSecretDeriver()
    assert ctx.next_note_index == 3
    assert (ctx.new_nullifier, ctx.new_secret) == derive_note_secrets(deriver, PRIVATE_KEY, POOL, 3)
    assert (ctx.existing_nullifier, ctx.existing_secret) == derive_note_secrets(deriver, PRIVATE_KEY, POOL, 0)


def test_tracker_consulted_once(withdrawal_request):
    tracker = MagicMock()
    tracker.reserve_next_index.return_value = 1
    calculate(withdrawal_request, tracker=tracker)
    tracker.reserve_next_index.assert_called_once_with(PRIVATE_KEY, POOL, min_index=1)


def test_missing_credential_checked_before_tracker(withdrawal_request):
    tracker = MagicMock()
    request = withdrawal_request.model_copy(update={"account": withdrawal_request.account.model_copy(update={"private_key": None})})
    with pytest.raises(MissingCredentialError):
        calculate(request, tracker=tracker)
    tracker.reserve_next_index.assert_not_called()


def test_tracker_failure_wrapped():
    tracker = MagicMock()
    tracker.reserve_next_index.side_effect = ConnectionError("cache down")
    with pytest.raises(IndexTrackerError, match="cache down"):
        reserve_note_index(tracker, PRIVATE_KEY, POOL)


def test_tracker_invalid_index_rejected():
    tracker = MagicMock()
    tracker.reserve_next_index.return_value = -1
    with pytest.raises(IndexTrackerError, match="invalid index"):
        reserve_note_index(tracker, PRIVATE_KEY, POOL)


def test_change_note_never_reuses_spent_index(withdrawal_request):
    # Fresh tracker, spending the very first deposit (note_index=0)
    ctx = calculate(withdrawal_request)
    assert ctx.next_note_index == 1
    assert ctx.new_nullifier != ctx.existing_nullifier
    assert ctx.new_secret != ctx.existing_secret


def test_spent_index_is_a_floor_for_the_tracker(withdrawal_request):
    note = withdrawal_request.note.model_copy(update={"note_index": 7})
    request = withdrawal_request.model_copy(update={"note": note})
    tracker = InMemoryNoteIndexTracker()

    assert calculate(request, tracker=tracker).next_note_index == 8
    assert tracker.last_used_index(PRIVATE_KEY, POOL) == 8
    # the floor only lifts the counter, later reservations continue from it
    assert calculate(withdrawal_request, tracker=tracker).next_note_index == 9


def test_tracker_below_floor_rejected():
    tracker = MagicMock()
    tracker.reserve_next_index.return_value = 2
    with pytest.raises(IndexTrackerError, match="below the required minimum 3"):
        reserve_note_index(tracker, PRIVATE_KEY, POOL, min_index=3)
