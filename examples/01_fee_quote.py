#!/usr/bin/env python3
"""
Example 01: Preview a withdrawal fee.

Pure local arithmetic; no indexer, RPC or prover required.

Usage:
    python examples/01_fee_quote.py
    python examples/01_fee_quote.py 0.25 500
"""

import sys

from privacy_pool.config import DEFAULT_RELAY_FEE_BPS
from privacy_pool.errors import InvalidAmountError
from privacy_pool.withdrawal.validation import calculate_withdrawal_amounts

amount = sys.argv[1] if len(sys.argv) > 1 else "1.0"
bps = int(sys.argv[2]) if len(sys.argv) > 2 else DEFAULT_RELAY_FEE_BPS

try:
    quote = calculate_withdrawal_amounts(amount, bps)
except InvalidAmountError as e:
    print(f"Invalid amount: {e}")
    sys.exit(1)

print("=== Withdrawal quote ===")
print(f"Withdraw:     {quote.withdraw_amount} ETH")
print(f"Fee ({quote.relay_fee_bps / 100:.2f}%): {quote.execution_fee} ETH")
print(f"You receive:  {quote.you_receive} ETH")
