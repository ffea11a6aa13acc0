"""Withdrawal pipeline steps and their orchestrator."""

from privacy_pool.withdrawal.service import WithdrawalService
from privacy_pool.withdrawal.validation import calculate_withdrawal_amounts, validate_withdrawal_request

__all__ = [
    "WithdrawalService",
    "calculate_withdrawal_amounts",
    "validate_withdrawal_request",
]
