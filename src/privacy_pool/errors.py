"""
Exception hierarchy for the withdrawal pipeline.

Every failure surfaced to a caller of WithdrawalService derives from
WithdrawalError. The orchestrator tags each error with the pipeline stage
that was being attempted when it was raised.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class WithdrawalError(Exception):
    """Base class for every withdrawal pipeline failure."""

    def __init__(self, message: str, stage: Any | None = None) -> None:
        super().__init__(message)
        self.stage = stage


# ------------------------------------------------------------------
# Request validation (local, never retried)
# ------------------------------------------------------------------


class ValidationError(WithdrawalError):
    """Raised when a withdrawal request is malformed."""
    pass


class InvalidNoteError(ValidationError):
    pass


class InvalidAmountError(ValidationError):
    pass


class InvalidRecipientError(ValidationError):
    pass


class MissingCredentialError(ValidationError):
    """Neither a private key nor a mnemonic was supplied."""
    pass


# ------------------------------------------------------------------
# Pipeline step failures
# ------------------------------------------------------------------


class DataFetchError(WithdrawalError):
    """One of the concurrent state fetches failed. Caller may rerun the pipeline."""

    def __init__(self, message: str, source: str | None = None, stage: Any | None = None) -> None:
        super().__init__(message, stage=stage)
        self.source = source


class IndexTrackerError(WithdrawalError):
    """The note index tracker could not reserve an index."""
    pass


class ProofFailureReason(str, Enum):
    WITNESS = "witness"
    INFRASTRUCTURE = "infrastructure"


class ProofGenerationError(WithdrawalError):
    """
    Proof generation failed.

    `reason` separates an unsatisfiable witness (retrying with the same
    inputs reproduces the failure) from a prover that could not run at all.
    """

    def __init__(
        self,
        message: str,
        reason: ProofFailureReason = ProofFailureReason.INFRASTRUCTURE,
        stage: Any | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.reason = reason


class EncodingError(WithdrawalError):
    """Proof or relay call could not be encoded for the contract."""
    pass


class AccountSetupError(WithdrawalError):
    """The executing account or its unsigned operation could not be prepared."""
    pass


class SubmissionError(WithdrawalError):
    """A prepared withdrawal was rejected on submission."""
    pass
