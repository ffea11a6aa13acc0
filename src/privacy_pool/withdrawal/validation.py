"""
Request validation and fee preview.

Both are local and side-effect free. validate_withdrawal_request must run
before any network or derivation call.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from eth_utils import from_wei, to_wei

from privacy_pool.config import BPS_DENOMINATOR, DEFAULT_RELAY_FEE_BPS
from privacy_pool.core.address import is_valid_address
from privacy_pool.core.models import WithdrawalAmounts, WithdrawalRequest
from privacy_pool.errors import (
    InvalidAmountError,
    InvalidNoteError,
    InvalidRecipientError,
    MissingCredentialError,
)


def parse_ether(amount: str) -> int:
    """Convert an ether decimal string to wei. Fractions below 1 wei are rejected."""
    value = _parse_decimal(amount)
    if value is None or value < 0:
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    scaled = value.scaleb(18)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(f"Amount {amount!r} has more than 18 decimal places")
    try:
        return to_wei(value, "ether")
    except ValueError as err:
        raise InvalidAmountError(f"Amount {amount!r} is out of range") from err


def validate_withdrawal_request(request: WithdrawalRequest) -> None:
    """
    Check a withdrawal request before anything touches the network.

    Raises:
        InvalidNoteError:       no note, or the note has no commitment
        InvalidNoteError:       note amount is not a wei-exact ether amount
        InvalidAmountError:     amount not a positive wei-exact number, or above the note balance
        InvalidRecipientError:  recipient is not an EVM address
        MissingCredentialError: neither a private key nor a mnemonic
    """
    note = request.note
    if note is None or not note.commitment:
        raise InvalidNoteError("Invalid note data: missing commitment")

    # Compared in wei, exactly as the prover will see them
    try:
        amount_wei = parse_ether(request.withdraw_amount)
    except InvalidAmountError as err:
        raise InvalidAmountError(f"Invalid withdrawal amount {request.withdraw_amount!r}: {err}") from err
    if amount_wei <= 0:
        raise InvalidAmountError(f"Invalid withdrawal amount: {request.withdraw_amount!r}")

    try:
        balance_wei = parse_ether(note.amount)
    except InvalidAmountError as err:
        raise InvalidNoteError(f"Invalid note amount {note.amount!r}: {err}") from err
    if amount_wei > balance_wei:
        raise InvalidAmountError(
            f"Withdrawal amount {request.withdraw_amount} exceeds note balance {note.amount}"
        )

    if not is_valid_address(request.recipient_address):
        raise InvalidRecipientError(f"Invalid recipient address: {request.recipient_address!r}")

    if not (request.account.has_private_key or request.account.has_mnemonic):
        raise MissingCredentialError("No account keys provided")


def calculate_withdrawal_amounts(
    withdraw_amount: str,
    relay_fee_bps: int = DEFAULT_RELAY_FEE_BPS,
) -> WithdrawalAmounts:
    """
    Preview the relay fee and the amount the recipient receives.

    Mirrors the contract's integer arithmetic: the fee is computed in wei and
    truncated, `fee = amount * bps / 10000`, and the recipient gets the rest.

    Example:
        >>> a = calculate_withdrawal_amounts("100", 1000)
        >>> a.execution_fee, a.you_receive
        (Decimal('10'), Decimal('90'))
    """
    amount_wei = parse_ether(withdraw_amount)
    fee_wei = amount_wei * relay_fee_bps // BPS_DENOMINATOR
    receive_wei = amount_wei - fee_wei
    return WithdrawalAmounts(
        withdraw_amount=_wei_to_ether(amount_wei),
        execution_fee=_wei_to_ether(fee_wei),
        you_receive=_wei_to_ether(receive_wei),
        relay_fee_bps=relay_fee_bps,
    )


def _wei_to_ether(wei: int) -> Decimal:
    return Decimal(from_wei(wei, "ether"))


def _parse_decimal(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None
