"""
Proof assembly: map domain values onto the prover's input schema and invoke
the prover exactly once.

The prover only checks circuit satisfiability, not meaning, so every value
must already be the correct scalar / wei integer before this step.
"""

from __future__ import annotations

import logging

from privacy_pool.core.models import WithdrawalContext, WithdrawalProof, WithdrawalProofInputs, WithdrawalRequest
from privacy_pool.crypto.prover import WithdrawalProver
from privacy_pool.errors import InvalidNoteError, ProofFailureReason, ProofGenerationError
from privacy_pool.withdrawal.validation import parse_ether

logger = logging.getLogger("privacy_pool.withdrawal.proof")


def build_proof_inputs(request: WithdrawalRequest, context: WithdrawalContext) -> WithdrawalProofInputs:
    """Map a request and its context onto the prover input schema."""
    note = request.note
    if note is None or not note.commitment:
        raise InvalidNoteError("Invalid note data: missing commitment")

    return WithdrawalProofInputs(
        existing_commitment_hash=note.commitment,
        existing_value=parse_ether(note.amount),
        existing_nullifier=context.existing_nullifier,
        existing_secret=context.existing_secret,
        withdrawal_value=parse_ether(request.withdraw_amount),
        context=context.context,
        label=note.label,
        new_nullifier=context.new_nullifier,
        new_secret=context.new_secret,
        state_tree_commitments=[leaf.leaf_value for leaf in context.state_tree_leaves],
        asp_tree_labels=list(context.asp_data.approved_labels),
    )


def check_witness(inputs: WithdrawalProofInputs) -> None:
    """
    Reject inputs the circuit can never satisfy.

    Raises:
        ProofGenerationError (WITNESS): commitment not in the state tree, or
            label not in the approved set
    """
    if inputs.existing_commitment_hash not in inputs.state_tree_commitments:
        raise ProofGenerationError(
            "Note commitment is not present in the state tree",
            reason=ProofFailureReason.WITNESS,
        )
    if inputs.label not in inputs.asp_tree_labels:
        raise ProofGenerationError(
            "Note label is not in the ASP approved set",
            reason=ProofFailureReason.WITNESS,
        )


def generate_withdrawal_proof(
    request: WithdrawalRequest,
    context: WithdrawalContext,
    prover: WithdrawalProver,
) -> WithdrawalProof:
    """
    Build inputs, invoke the prover once, and check the proof is bound to `context`.

    Raises:
        ProofGenerationError: bad witness or prover failure (see `.reason`)
    """
    inputs = build_proof_inputs(request, context)
    check_witness(inputs)

    try:
        proof = prover.generate_withdrawal_proof(inputs)
    except ProofGenerationError:
        raise
    except Exception as err:
        raise ProofGenerationError(
            f"Prover failed: {err}", reason=ProofFailureReason.INFRASTRUCTURE
        ) from err

    if proof.context is None:
        raise ProofGenerationError(
            "Prover output has no readable context signal",
            reason=ProofFailureReason.INFRASTRUCTURE,
        )
    if proof.context != context.context:
        raise ProofGenerationError(
            "Proof public signals are not bound to the computed context",
            reason=ProofFailureReason.WITNESS,
        )
    logger.debug(f"Proof generated with {len(proof.public_signals)} public signals")
    return proof
