"""
Relay calldata encoding.

Builds the bytes the entrypoint contract decodes when relaying a withdrawal:

    relay(
        (address processooor, bytes data)                         Withdrawal
        (uint256[2] pA, uint256[2][2] pB, uint256[2] pC,
         uint256[8] pubSignals)                                   WithdrawProof
        uint256 scope
    )

where `data` is abi.encode(address recipient, address feeRecipient,
uint256 relayFeeBPS). These layouts are part of the protocol: they MUST
byte-match the on-chain decoder.
"""

from __future__ import annotations

from eth_abi import encode
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from privacy_pool.core.models import FormattedProof, WithdrawalData, WithdrawalProof
from privacy_pool.errors import EncodingError

WITHDRAWAL_TUPLE = "(address,bytes)"
WITHDRAW_PROOF_TUPLE = "(uint256[2],uint256[2][2],uint256[2],uint256[8])"
RELAY_DATA_TYPES = ["address", "address", "uint256"]

RELAY_SIGNATURE = f"relay({WITHDRAWAL_TUPLE},{WITHDRAW_PROOF_TUPLE},uint256)"
RELAY_SELECTOR = function_signature_to_4byte_selector(RELAY_SIGNATURE)

PUBLIC_SIGNAL_COUNT = 8


def encode_relay_data(recipient: str, fee_recipient: str, relay_fee_bps: int) -> str:
    """ABI-encode the relay data blob carried in Withdrawal.data."""
    try:
        raw = encode(
            RELAY_DATA_TYPES,
            [to_checksum_address(recipient), to_checksum_address(fee_recipient), relay_fee_bps],
        )
    except (AbiEncodingError, ValueError, TypeError) as err:
        raise EncodingError(f"Cannot encode relay data: {err}") from err
    return "0x" + raw.hex()


def create_withdrawal_data(
    recipient: str,
    processor: str,
    fee_recipient: str,
    relay_fee_bps: int,
) -> WithdrawalData:
    """Build the Withdrawal struct for a relayed withdrawal to `recipient`."""
    try:
        processooor = to_checksum_address(processor)
    except ValueError as err:
        raise EncodingError(f"Invalid processor address {processor!r}") from err
    return WithdrawalData(
        processooor=processooor,
        data=encode_relay_data(recipient, fee_recipient, relay_fee_bps),
    )


def format_proof_for_contract(proof: WithdrawalProof) -> FormattedProof:
    """
    Convert a snarkjs Groth16 proof into the verifier's calldata layout.

    snarkjs emits projective coordinates (a trailing "1") and G2 points as
    [x0, x1]; the pairing precompile expects G2 coordinates as [x1, x0].
    """
    p = proof.proof
    if len(proof.public_signals) != PUBLIC_SIGNAL_COUNT:
        raise EncodingError(
            f"Expected {PUBLIC_SIGNAL_COUNT} public signals, got {len(proof.public_signals)}"
        )
    try:
        return FormattedProof(
            p_a=(int(p.pi_a[0]), int(p.pi_a[1])),
            p_b=(
                (int(p.pi_b[0][1]), int(p.pi_b[0][0])),
                (int(p.pi_b[1][1]), int(p.pi_b[1][0])),
            ),
            p_c=(int(p.pi_c[0]), int(p.pi_c[1])),
            pub_signals=tuple(int(s) for s in proof.public_signals),
        )
    except (IndexError, ValueError) as err:
        raise EncodingError(f"Malformed Groth16 proof: {err}") from err


def encode_relay_call_data(
    withdrawal: WithdrawalData,
    proof: FormattedProof,
    scope: int,
) -> str:
    """Full `relay(...)` calldata: 4-byte selector followed by the ABI-encoded arguments."""
    try:
        args = encode(
            [WITHDRAWAL_TUPLE, WITHDRAW_PROOF_TUPLE, "uint256"],
            [withdrawal.as_abi_tuple(), proof.as_abi_tuple(), scope],
        )
    except (AbiEncodingError, ValueError, TypeError) as err:
        raise EncodingError(f"Cannot encode relay call: {err}") from err
    return "0x" + (RELAY_SELECTOR + args).hex()
