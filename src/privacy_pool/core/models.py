"""
Core data models for privacy pool withdrawals.

Amounts entered by users are ether decimal strings ("0.5"); everything handed
to the prover or the contract is an integer in wei (1 ETH = 10**18 wei).
Scalars accept ints, decimal strings or 0x-prefixed hex strings.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Annotated, Any, Callable

from eth_utils import to_bytes, to_checksum_address
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, SecretStr, field_validator

WEI_PER_ETHER = 10**18

# Position of each public signal emitted by the withdrawal circuit
PUBLIC_SIGNAL_NAMES = (
    "newCommitmentHash",
    "existingNullifierHash",
    "withdrawnValue",
    "stateRoot",
    "stateTreeDepth",
    "ASPRoot",
    "ASPTreeDepth",
    "context",
)
CONTEXT_SIGNAL_INDEX = PUBLIC_SIGNAL_NAMES.index("context")


def _to_scalar(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    return value


def _to_decimal_string(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


def _to_signal(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            raise ValueError(f"signal must be a non-negative decimal integer, got {value!r}")
        return text
    return value


Scalar = Annotated[int, BeforeValidator(_to_scalar)]
DecimalString = Annotated[str, BeforeValidator(_to_decimal_string)]
SignalString = Annotated[str, BeforeValidator(_to_signal)]
OptionalScalar = Annotated[int | None, BeforeValidator(_to_scalar)]


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ------------------------------------------------------------------
# Request side
# ------------------------------------------------------------------


class Note(_Model):
    """A previously created, unspent commitment owned by the caller."""
    commitment: OptionalScalar = None
    amount: DecimalString  # ether
    label: Scalar
    note_index: int = Field(alias="noteIndex", ge=0)


class AccountCredential(_Model):
    """Either a raw private key or a mnemonic (phrase or word list)."""
    mnemonic: SecretStr | None = None
    private_key: SecretStr | None = Field(default=None, alias="privateKey")

    @field_validator("mnemonic", mode="before")
    @classmethod
    def _join_words(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return " ".join(str(word).strip() for word in value)
        return value

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key and self.private_key.get_secret_value().strip())

    @property
    def has_mnemonic(self) -> bool:
        return bool(self.mnemonic and self.mnemonic.get_secret_value().strip())


class WithdrawalRequest(_Model):
    note: Note | None = None
    withdraw_amount: DecimalString = Field(alias="withdrawAmount")  # ether
    recipient_address: str = Field(alias="recipientAddress")
    account: AccountCredential = Field(default_factory=AccountCredential)


# ------------------------------------------------------------------
# Fetched state
# ------------------------------------------------------------------


class StateTreeLeaf(_Model):
    leaf_index: int = Field(default=0, alias="leafIndex")
    leaf_value: Scalar = Field(alias="leafValue")


class ASPData(_Model):
    """Labels approved by the association set provider, in tree order."""
    approved_labels: list[Scalar] = Field(default_factory=list, alias="approvedLabels")
    asp_root: Scalar = Field(default=0, alias="aspRoot")


class FetchedWithdrawalData(_Model):
    state_tree_leaves: list[StateTreeLeaf]
    asp_data: ASPData
    pool_scope: Scalar


class WithdrawalData(_Model):
    """The on-chain Withdrawal struct: (address processooor, bytes data)."""
    processooor: str
    data: str  # 0x-prefixed ABI-encoded relay data

    def as_abi_tuple(self) -> tuple[str, bytes]:
        return to_checksum_address(self.processooor), to_bytes(hexstr=self.data)


class WithdrawalContext(_Model):
    state_tree_leaves: list[StateTreeLeaf]
    asp_data: ASPData
    pool_scope: Scalar
    withdrawal_data: WithdrawalData
    context: int
    new_nullifier: int = Field(repr=False)
    new_secret: int = Field(repr=False)
    existing_nullifier: int = Field(repr=False)
    existing_secret: int = Field(repr=False)
    next_note_index: int


# ------------------------------------------------------------------
# Proving
# ------------------------------------------------------------------


class WithdrawalProofInputs(_Model):
    """Input schema of the external withdrawal prover. Values are in wei / field elements."""
    existing_commitment_hash: int = Field(alias="existingCommitmentHash")
    existing_value: int = Field(alias="existingValue")
    existing_nullifier: int = Field(alias="existingNullifier", repr=False)
    existing_secret: int = Field(alias="existingSecret", repr=False)
    withdrawal_value: int = Field(alias="withdrawalValue")
    context: int
    label: int
    new_nullifier: int = Field(alias="newNullifier", repr=False)
    new_secret: int = Field(alias="newSecret", repr=False)
    state_tree_commitments: list[int] = Field(alias="stateTreeCommitments")
    asp_tree_labels: list[int] = Field(alias="aspTreeLabels")

    def to_prover_json(self) -> dict[str, Any]:
        """Prover JSON: camelCase keys, integers as decimal strings."""
        out: dict[str, Any] = {}
        for key, value in self.model_dump(by_alias=True).items():
            out[key] = [str(v) for v in value] if isinstance(value, list) else str(value)
        return out


class Groth16Proof(_Model):
    pi_a: list[SignalString]
    pi_b: list[list[SignalString]]
    pi_c: list[SignalString]
    protocol: str = "groth16"
    curve: str = "bn128"


class WithdrawalProof(_Model):
    proof: Groth16Proof
    public_signals: list[SignalString] = Field(alias="publicSignals")

    @property
    def context(self) -> int | None:
        """The context scalar the proof was generated against."""
        if len(self.public_signals) <= CONTEXT_SIGNAL_INDEX:
            return None
        signal = self.public_signals[CONTEXT_SIGNAL_INDEX]
        return int(signal) if signal.isdigit() else None


class FormattedProof(_Model):
    """WithdrawProof struct layout expected by the verifier contract."""
    p_a: tuple[int, int]
    p_b: tuple[tuple[int, int], tuple[int, int]]
    p_c: tuple[int, int]
    pub_signals: tuple[int, ...]

    def as_abi_tuple(self) -> tuple[Any, ...]:
        return (
            list(self.p_a),
            [list(row) for row in self.p_b],
            list(self.p_c),
            list(self.pub_signals),
        )


# ------------------------------------------------------------------
# Transaction side
# ------------------------------------------------------------------


class UserOperation(_Model):
    """An unsigned ERC-4337 (v0.7) user operation."""
    sender: str
    nonce: int
    call_data: str
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster: str | None = None
    paymaster_data: str = "0x"
    signature: str = "0x"

    def to_rpc(self) -> dict[str, Any]:
        """Bundler JSON-RPC representation (camelCase, hex quantities)."""
        op: dict[str, Any] = {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "callData": self.call_data,
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "signature": self.signature,
        }
        if self.paymaster:
            op["paymaster"] = self.paymaster
            op["paymasterData"] = self.paymaster_data
        return op


class AccountHandle(_Model):
    """
    The smart account that submits the relay call.

    `signer` receives the unsigned operation and returns its signature; it
    belongs to the wallet layer and is never serialized.
    """
    address: str
    entry_point: str
    chain_id: int
    signer: Callable[[UserOperation], str] | None = Field(default=None, exclude=True, repr=False)


class PreparedWithdrawal(_Model):
    """Everything needed to submit a withdrawal, produced without touching the chain."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    context: WithdrawalContext
    proof: WithdrawalProof
    call_data: str
    user_operation: UserOperation
    account: AccountHandle


class WithdrawalAmounts(_Model):
    """Fee preview in ether."""
    withdraw_amount: Decimal
    execution_fee: Decimal
    you_receive: Decimal
    relay_fee_bps: int
