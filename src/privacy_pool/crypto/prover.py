"""
Withdrawal prover adapters.

The circuit and its proving algorithm live outside this package. A prover
receives a WithdrawalProofInputs and returns a WithdrawalProof, or raises
ProofGenerationError.

SubprocessProver drives any command-line prover that reads a JSON input file
and writes snarkjs-style `proof.json` / `public.json` files, e.g. a wrapper
around `snarkjs groth16 fullprove`.
"""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from privacy_pool.core.models import Groth16Proof, WithdrawalProof, WithdrawalProofInputs
from privacy_pool.errors import ProofFailureReason, ProofGenerationError

logger = logging.getLogger("privacy_pool.prover")

DEFAULT_PROVER_TIMEOUT = 300.0

# stderr fragments emitted by witness calculators when constraints fail
_WITNESS_FAILURE_MARKERS = (
    "assert failed",
    "constraint doesn't match",
    "constraint does not match",
    "error in template",
    "not satisfied",
)


class WithdrawalProver(Protocol):
    def generate_withdrawal_proof(self, inputs: WithdrawalProofInputs) -> WithdrawalProof: ...


class SubprocessProver:
    """
    Run an external prover command.

    The command is an argument list; `{input}`, `{proof}` and `{public}`
    placeholders are replaced with paths inside a private temporary directory.

    Usage:
        prover = SubprocessProver([
            "snarkjs-withdraw", "--input", "{input}",
            "--proof", "{proof}", "--public", "{public}",
        ])
        proof = prover.generate_withdrawal_proof(inputs)
    """

    def __init__(self, command: list[str], timeout: float = DEFAULT_PROVER_TIMEOUT) -> None:
        if not command:
            raise ValueError("Prover command must not be empty")
        self.command = list(command)
        self.timeout = timeout

    def generate_withdrawal_proof(self, inputs: WithdrawalProofInputs) -> WithdrawalProof:
        with tempfile.TemporaryDirectory(prefix="withdrawal-proof-") as tmp_dir:
            tmp = Path(tmp_dir)
            paths = {
                "input": tmp / "input.json",
                "proof": tmp / "proof.json",
                "public": tmp / "public.json",
            }
            paths["input"].write_text(json.dumps(inputs.to_prover_json()))
            self._run({name: str(path) for name, path in paths.items()})
            return self._read_outputs(paths["proof"], paths["public"])

    def _run(self, placeholders: dict[str, str]) -> None:
        argv = [arg.format(**placeholders) for arg in self.command]
        logger.debug(f"Running prover: {argv[0]}")
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as err:
            raise ProofGenerationError(
                f"Prover executable not found: {argv[0]}",
                reason=ProofFailureReason.INFRASTRUCTURE,
            ) from err
        except subprocess.TimeoutExpired as err:
            raise ProofGenerationError(
                f"Prover timed out after {self.timeout:.0f}s",
                reason=ProofFailureReason.INFRASTRUCTURE,
            ) from err

        if result.returncode != 0:
            stderr = result.stderr.strip() or "unknown prover error"
            raise ProofGenerationError(
                f"Prover failed (exit {result.returncode}): {stderr}",
                reason=classify_prover_failure(stderr),
            )

    @staticmethod
    def _read_outputs(proof_path: Path, public_path: Path) -> WithdrawalProof:
        try:
            proof = Groth16Proof.model_validate(json.loads(proof_path.read_text()))
            public_signals = json.loads(public_path.read_text())
            return WithdrawalProof(proof=proof, public_signals=public_signals)
        except (OSError, json.JSONDecodeError, PydanticValidationError) as err:
            raise ProofGenerationError(
                f"Prover produced unreadable output: {err}",
                reason=ProofFailureReason.INFRASTRUCTURE,
            ) from err


def classify_prover_failure(stderr: str) -> ProofFailureReason:
    """Tell an unsatisfiable witness apart from a broken prover."""
    text = stderr.lower()
    if any(marker in text for marker in _WITNESS_FAILURE_MARKERS):
        return ProofFailureReason.WITNESS
    return ProofFailureReason.INFRASTRUCTURE
