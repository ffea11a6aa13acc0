"""
privacy-pool: withdrawal pipeline for privacy pool protocols.

Usage:
    from privacy_pool import WithdrawalConfig, WithdrawalRequest, WithdrawalService
"""

from privacy_pool.config import WithdrawalConfig
from privacy_pool.core.models import Note, PreparedWithdrawal, WithdrawalAmounts, WithdrawalRequest
from privacy_pool.errors import WithdrawalError
from privacy_pool.withdrawal.service import WithdrawalService

__version__ = "0.1.0"
__all__ = [
    "Note",
    "PreparedWithdrawal",
    "WithdrawalAmounts",
    "WithdrawalConfig",
    "WithdrawalError",
    "WithdrawalRequest",
    "WithdrawalService",
]
