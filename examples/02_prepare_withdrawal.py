#!/usr/bin/env python3
"""
Example 02: Prepare (and optionally submit) a withdrawal.

Reads deployment settings from PRIVACY_POOL_* environment variables, fetches
state from the configured indexer and RPC, runs the external prover and
prints the prepared operation. Nothing is submitted unless --execute is given.

Usage:
    export PRIVACY_POOL_ACCOUNT_ADDRESS=0x...
    export PRIVACY_POOL_NOTE_INDEX_PATH=~/.privacy-pool/indices.json
    export WITHDRAW_PRIVATE_KEY=0x...
    python examples/02_prepare_withdrawal.py <commitment> <label> <note_amount> <note_index> <amount> <recipient>
"""

import logging
import os
import sys

from privacy_pool import WithdrawalConfig, WithdrawalError, WithdrawalRequest, WithdrawalService

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

args = [a for a in sys.argv[1:] if a != "--execute"]
if len(args) != 6:
    print(__doc__)
    sys.exit(1)

commitment, label, note_amount, note_index, amount, recipient = args
request = WithdrawalRequest.model_validate({
    "note": {"commitment": commitment, "label": label, "amount": note_amount, "noteIndex": int(note_index)},
    "withdrawAmount": amount,
    "recipientAddress": recipient,
    "account": {"privateKey": os.getenv("WITHDRAW_PRIVATE_KEY"), "mnemonic": os.getenv("WITHDRAW_MNEMONIC")},
})

with WithdrawalService.from_config(WithdrawalConfig.from_env()) as service:
    quote = service.calculate_amounts(amount)
    print(f"Fee: {quote.execution_fee} ETH, recipient receives {quote.you_receive} ETH")

    try:
        prepared = service.prepare_withdrawal(request)
    except WithdrawalError as e:
        print(f"Preparation failed at {e.stage}: {e}")
        sys.exit(1)

    print(f"Prepared withdrawal {prepared.id}")
    print(f"  change note index: {prepared.context.next_note_index}")
    print(f"  context:           {prepared.context.context}")
    print(f"  call data:         {prepared.call_data[:74]}...")

    if "--execute" in sys.argv:
        # A signer must be wired through WithdrawalService.from_config(..., signer=...)
        try:
            print(f"Submitted: {service.execute_withdrawal(prepared)}")
        except WithdrawalError as e:
            print(f"Submission failed: {e}")
            sys.exit(1)
