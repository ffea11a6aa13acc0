"""
Shared fixtures for the withdrawal pipeline tests.
Every collaborator (indexer, RPC, prover, bundler) is stubbed; no network required.
"""

from unittest.mock import MagicMock

import pytest

from privacy_pool.config import DEFAULT_POOL_ADDRESS, WithdrawalConfig
from privacy_pool.core.models import (
    AccountCredential,
    AccountHandle,
    ASPData,
    Groth16Proof,
    Note,
    StateTreeLeaf,
    UserOperation,
    WithdrawalProof,
    WithdrawalRequest,
)
from privacy_pool.core.note_index import InMemoryNoteIndexTracker
from privacy_pool.crypto.derivation import KeccakSecretDeriver
from privacy_pool.events import RecordingEventSink
from privacy_pool.withdrawal.data import WithdrawalDataFetcher
from privacy_pool.withdrawal.service import WithdrawalService

POOL = DEFAULT_POOL_ADDRESS
RECIPIENT = "0x" + "ab" * 20
ACCOUNT = "0x" + "cd" * 20
PRIVATE_KEY = "0x" + "11" * 32
COMMITMENT = 12345
LABEL = 777
SCOPE = 987654321
TX_HASH = "0x" + "ee" * 32


class EchoProver:
    """Returns a well-formed proof whose last public signal is the requested context."""

    def __init__(self):
        self.calls = []

    def generate_withdrawal_proof(self, inputs):
        self.calls.append(inputs)
        return WithdrawalProof(
            proof=Groth16Proof(
                pi_a=["1", "2", "1"],
                pi_b=[["3", "4"], ["5", "6"], ["1", "0"]],
                pi_c=["7", "8", "1"],
            ),
            public_signals=["11", "12", "13", "14", "15", "16", "17", str(inputs.context)],
        )


class StubAccounts:
    """Account layer that prepares operations locally and records submissions."""

    def __init__(self):
        self.executed = []

    def create_withdrawal_account_handle(self):
        return AccountHandle(address=ACCOUNT, entry_point=POOL, chain_id=11155111)

    def prepare_withdrawal_operation(self, handle, call_data):
        return UserOperation(sender=handle.address, nonce=0, call_data=call_data)

    def execute_withdrawal_operation(self, handle, operation):
        self.executed.append(operation)
        return TX_HASH


@pytest.fixture
def withdrawal_request():
    return WithdrawalRequest(
        note=Note(commitment=COMMITMENT, amount="1.0", label=LABEL, note_index=0),
        withdraw_amount="0.5",
        recipient_address=RECIPIENT,
        account=AccountCredential(private_key=PRIVATE_KEY),
    )


@pytest.fixture
def sources():
    """(indexer, pool contract) mocks serving a state tree that contains COMMITMENT."""
    indexer = MagicMock()
    indexer.fetch_state_tree_leaves.return_value = [
        StateTreeLeaf(leaf_index=0, leaf_value=999),
        StateTreeLeaf(leaf_index=1, leaf_value=COMMITMENT),
    ]
    indexer.fetch_asp_data.return_value = ASPData(approved_labels=[LABEL, 888], asp_root=42)
    pool = MagicMock()
    pool.fetch_pool_scope.return_value = SCOPE
    return indexer, pool


@pytest.fixture
def prover():
    return EchoProver()


@pytest.fixture
def accounts():
    return StubAccounts()


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def make_service(sources, prover, accounts, events):
    def _make(tracker=None, config=None, **overrides):
        indexer, pool = sources
        params = dict(
            fetcher=WithdrawalDataFetcher(indexer, indexer, pool),
            tracker=tracker or InMemoryNoteIndexTracker(),
            deriver=KeccakSecretDeriver(),
            prover=prover,
            accounts=accounts,
            config=config or WithdrawalConfig(),
            events=events,
        )
        params.update(overrides)
        return WithdrawalService(**params)

    return _make
