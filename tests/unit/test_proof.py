"""
Unit tests for proof assembly and the subprocess prover adapter.
subprocess.run is monkeypatched; no prover binary required.
"""

import json
import subprocess
from unittest.mock import MagicMock

import pytest

from conftest import COMMITMENT, LABEL, EchoProver
from privacy_pool.config import WithdrawalConfig
from privacy_pool.core.models import ASPData, FetchedWithdrawalData, Groth16Proof, StateTreeLeaf, WithdrawalProof
from privacy_pool.core.note_index import InMemoryNoteIndexTracker
from privacy_pool.crypto import prover as prover_module
from privacy_pool.crypto.derivation import KeccakSecretDeriver
from privacy_pool.crypto.prover import SubprocessProver, classify_prover_failure
from privacy_pool.errors import ProofFailureReason, ProofGenerationError
from privacy_pool.withdrawal.context import calculate_withdrawal_context
from privacy_pool.withdrawal.proof import build_proof_inputs, generate_withdrawal_proof

COMMAND = ["prover", "{input}", "{proof}", "{public}"]


def make_context(request, leaves=(COMMITMENT,), labels=(LABEL,)):
    fetched = FetchedWithdrawalData(
        state_tree_leaves=[StateTreeLeaf(leaf_index=i, leaf_value=v) for i, v in enumerate(leaves)],
        asp_data=ASPData(approved_labels=list(labels)),
        pool_scope=1,
    )
    return calculate_withdrawal_context(
        request,
        fetched,
        tracker=InMemoryNoteIndexTracker(),
        deriver=KeccakSecretDeriver(),
        config=WithdrawalConfig(),
    )


# --- Proof assembly ---

def test_inputs_are_wei_and_context_bound(withdrawal_request):
    ctx = make_context(withdrawal_request)
    inputs = build_proof_inputs(withdrawal_request, ctx)
    assert inputs.existing_value == 10**18
    assert inputs.withdrawal_value == 5 * 10**17
    assert inputs.context == ctx.context
    assert inputs.label == LABEL
    assert inputs.existing_commitment_hash == COMMITMENT
    assert inputs.new_nullifier == ctx.new_nullifier
    assert inputs.existing_secret == ctx.existing_secret
    assert inputs.state_tree_commitments == [COMMITMENT]


def test_prover_invoked_once(withdrawal_request):
    ctx = make_context(withdrawal_request)
    prover = EchoProver()
    proof = generate_withdrawal_proof(withdrawal_request, ctx, prover)
    assert len(prover.calls) == 1
    assert proof.context == ctx.context


def test_commitment_not_in_tree_is_witness_failure(withdrawal_request):
    ctx = make_context(withdrawal_request, leaves=(1, 2, 3))
    prover = EchoProver()
    with pytest.raises(ProofGenerationError) as exc_info:
        generate_withdrawal_proof(withdrawal_request, ctx, prover)
    assert exc_info.value.reason is ProofFailureReason.WITNESS
    assert prover.calls == []


def test_unapproved_label_is_witness_failure(withdrawal_request):
    ctx = make_context(withdrawal_request, labels=(1,))
    with pytest.raises(ProofGenerationError, match="ASP") as exc_info:
        generate_withdrawal_proof(withdrawal_request, ctx, EchoProver())
    assert exc_info.value.reason is ProofFailureReason.WITNESS


def test_prover_crash_is_infrastructure_failure(withdrawal_request):
    ctx = make_context(withdrawal_request)
    prover = MagicMock()
    prover.generate_withdrawal_proof.side_effect = RuntimeError("out of memory")
    with pytest.raises(ProofGenerationError, match="out of memory") as exc_info:
        generate_withdrawal_proof(withdrawal_request, ctx, prover)
    assert exc_info.value.reason is ProofFailureReason.INFRASTRUCTURE
    assert prover.generate_withdrawal_proof.call_count == 1


def test_proof_for_other_context_rejected(withdrawal_request):
    ctx = make_context(withdrawal_request)
    prover = MagicMock()
    stale = EchoProver().generate_withdrawal_proof(
        build_proof_inputs(withdrawal_request, ctx).model_copy(update={"context": ctx.context + 1})
    )
    prover.generate_withdrawal_proof.return_value = stale
    with pytest.raises(ProofGenerationError, match="not bound"):
        generate_withdrawal_proof(withdrawal_request, ctx, prover)


# --- SubprocessProver ---

PROOF_JSON = {
    "pi_a": ["1", "2", "1"],
    "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
    "pi_c": ["7", "8", "1"],
    "protocol": "groth16",
    "curve": "bn128",
}


def fake_run(returncode=0, stderr="", write_outputs=True, seen=None, public=None):
    def _run(argv, **kwargs):
        _, input_path, proof_path, public_path = argv
        if seen is not None:
            seen.append(json.loads(open(input_path).read()))
        if write_outputs:
            with open(proof_path, "w") as f:
                json.dump(PROOF_JSON, f)
            with open(public_path, "w") as f:
                json.dump(public or ["1", "2", "3", "4", "5", "6", "7", "8"], f)
        return subprocess.CompletedProcess(argv, returncode, stdout="", stderr=stderr)
    return _run


def test_subprocess_prover_reads_outputs(monkeypatch, withdrawal_request):
    seen = []
    monkeypatch.setattr(prover_module.subprocess, "run", fake_run(seen=seen))
    inputs = build_proof_inputs(withdrawal_request, make_context(withdrawal_request))

    proof = SubprocessProver(COMMAND).generate_withdrawal_proof(inputs)

    assert proof.public_signals[-1] == "8"
    assert proof.proof.pi_b[0] == ["3", "4"]
    assert seen[0]["withdrawalValue"] == "500000000000000000"


def test_subprocess_witness_failure(monkeypatch, withdrawal_request):
    monkeypatch.setattr(
        prover_module.subprocess, "run",
        fake_run(returncode=1, stderr="Error: Assert Failed. Error in template Withdraw_1", write_outputs=False),
    )
    inputs = build_proof_inputs(withdrawal_request, make_context(withdrawal_request))
    with pytest.raises(ProofGenerationError, match="exit 1") as exc_info:
        SubprocessProver(COMMAND).generate_withdrawal_proof(inputs)
    assert exc_info.value.reason is ProofFailureReason.WITNESS


def test_subprocess_missing_binary(monkeypatch, withdrawal_request):
    def _run(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(prover_module.subprocess, "run", _run)
    inputs = build_proof_inputs(withdrawal_request, make_context(withdrawal_request))
    with pytest.raises(ProofGenerationError, match="not found") as exc_info:
        SubprocessProver(COMMAND).generate_withdrawal_proof(inputs)
    assert exc_info.value.reason is ProofFailureReason.INFRASTRUCTURE


def test_subprocess_timeout(monkeypatch, withdrawal_request):
    def _run(argv, **kwargs):
        raise subprocess.TimeoutExpired(argv, kwargs["timeout"])

    monkeypatch.setattr(prover_module.subprocess, "run", _run)
    inputs = build_proof_inputs(withdrawal_request, make_context(withdrawal_request))
    with pytest.raises(ProofGenerationError, match="timed out") as exc_info:
        SubprocessProver(COMMAND, timeout=5).generate_withdrawal_proof(inputs)
    assert exc_info.value.reason is ProofFailureReason.INFRASTRUCTURE


def test_subprocess_missing_outputs(monkeypatch, withdrawal_request):
    monkeypatch.setattr(prover_module.subprocess, "run", fake_run(write_outputs=False))
    inputs = build_proof_inputs(withdrawal_request, make_context(withdrawal_request))
    with pytest.raises(ProofGenerationError, match="unreadable") as exc_info:
        SubprocessProver(COMMAND).generate_withdrawal_proof(inputs)
    assert exc_info.value.reason is ProofFailureReason.INFRASTRUCTURE


def test_subprocess_non_numeric_signal(monkeypatch, withdrawal_request):
    public = ["1", "2", "3", "4", "5", "6", "7", "not-a-number"]
    monkeypatch.setattr(prover_module.subprocess, "run", fake_run(public=public))
    inputs = build_proof_inputs(withdrawal_request, make_context(withdrawal_request))
    with pytest.raises(ProofGenerationError, match="unreadable") as exc_info:
        SubprocessProver(COMMAND).generate_withdrawal_proof(inputs)
    assert exc_info.value.reason is ProofFailureReason.INFRASTRUCTURE


def test_unreadable_context_signal_is_infrastructure_failure(withdrawal_request):
    ctx = make_context(withdrawal_request)
    prover = MagicMock()
    # model_construct skips validation, like a prover handing back raw output
    prover.generate_withdrawal_proof.return_value = WithdrawalProof.model_construct(
        proof=Groth16Proof(pi_a=["1", "2", "1"], pi_b=[], pi_c=["3", "4", "1"]),
        public_signals=["1", "2", "3", "4", "5", "6", "7", "0xzz"],
    )
    with pytest.raises(ProofGenerationError, match="no readable context") as exc_info:
        generate_withdrawal_proof(withdrawal_request, ctx, prover)
    assert exc_info.value.reason is ProofFailureReason.INFRASTRUCTURE


def test_empty_command_rejected():
    with pytest.raises(ValueError):
        SubprocessProver([])


@pytest.mark.parametrize("stderr, reason", [
    ("Assert Failed.", ProofFailureReason.WITNESS),
    ("constraint doesn't match 1 != 0", ProofFailureReason.WITNESS),
    ("ENOENT: circuit.zkey", ProofFailureReason.INFRASTRUCTURE),
    ("", ProofFailureReason.INFRASTRUCTURE),
])
def test_classify_prover_failure(stderr, reason):
    assert classify_prover_failure(stderr) is reason
