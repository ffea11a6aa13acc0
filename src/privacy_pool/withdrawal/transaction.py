"""
Transaction preparation: turn a context + proof into an unsigned operation.

Nothing here touches the chain's state; the returned operation is only
submitted when the caller explicitly executes the prepared withdrawal.
"""

from __future__ import annotations

from dataclasses import dataclass

from privacy_pool.core.models import AccountHandle, UserOperation, WithdrawalContext, WithdrawalProof
from privacy_pool.errors import AccountSetupError, WithdrawalError
from privacy_pool.relayer.bundler import AccountLayer
from privacy_pool.relayer.calldata import encode_relay_call_data, format_proof_for_contract


@dataclass(frozen=True)
class PreparedTransaction:
    call_data: str
    user_operation: UserOperation
    account: AccountHandle


def prepare_withdrawal_transaction(
    context: WithdrawalContext,
    proof: WithdrawalProof,
    accounts: AccountLayer,
) -> PreparedTransaction:
    """
    Format the proof, encode the relay call and build the unsigned operation.

    Raises:
        EncodingError:     proof or relay call cannot be encoded
        AccountSetupError: the account handle or operation cannot be prepared
    """
    formatted = format_proof_for_contract(proof)
    call_data = encode_relay_call_data(context.withdrawal_data, formatted, context.pool_scope)

    try:
        account = accounts.create_withdrawal_account_handle()
        operation = accounts.prepare_withdrawal_operation(account, call_data)
    except WithdrawalError:
        raise
    except Exception as err:
        raise AccountSetupError(f"Account setup failed: {err}") from err

    return PreparedTransaction(call_data=call_data, user_operation=operation, account=account)
