"""
Configuration for the withdrawal pipeline.

Protocol constants (field prime, fee basis points) live here next to the
deployment addresses so every component reads them from one place.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field

# BN254 scalar field -- MUST match the withdrawal circuit
SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# 1000 BPS = 10%
DEFAULT_RELAY_FEE_BPS = 1000
BPS_DENOMINATOR = 10_000

# Default deployment, override with PRIVACY_POOL_* environment variables
DEFAULT_CHAIN_ID = 11155111
DEFAULT_POOL_ADDRESS = "0x644d5a2554d36e27509254f32ccfebe8cd58861f"
DEFAULT_ENTRYPOINT_ADDRESS = "0x6818809eefce719e480a7526d76bd3e561526b46"
DEFAULT_PAYMASTER_ADDRESS = "0x2a2d2b4c4a7cb2d1d2bce3a7e2c49c4dfd9c0d39"
ERC4337_ENTRYPOINT_ADDRESS = "0x0000000071727de22e5e9d8baf0edac6f37da032"

DEFAULT_INDEXER_URL = "http://127.0.0.1:42069"
DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
DEFAULT_BUNDLER_URL = "http://127.0.0.1:4337"

_ENV_PREFIX = "PRIVACY_POOL_"


class ConfigError(ValueError):
    """Raised when an environment override cannot be parsed."""
    pass


@dataclass
class WithdrawalConfig:
    """
    Deployment and protocol settings for a single pool.

    Args:
        chain_id:              Target EVM chain id
        pool_address:          Privacy pool contract (scope source, derivation domain)
        processor_address:     Contract that processes relayed withdrawals (the entrypoint)
        fee_recipient_address: Receives the relay fee (the paymaster)
        relay_fee_bps:         Protocol-wide relay fee in basis points
        indexer_url:           REST indexer serving state-tree leaves and ASP data
        rpc_url:               JSON-RPC endpoint used for contract reads
        bundler_url:           ERC-4337 bundler endpoint
        account_address:       Smart account that submits the relay call
        prover_command:        Argument list for the external withdrawal prover
        prover_timeout:        Seconds before the prover is abandoned
        note_index_path:       JSON file backing the note index tracker (None = in memory)
        http_timeout:          Timeout for indexer/RPC/bundler calls
    """
    chain_id: int = DEFAULT_CHAIN_ID
    pool_address: str = DEFAULT_POOL_ADDRESS
    processor_address: str = DEFAULT_ENTRYPOINT_ADDRESS
    fee_recipient_address: str = DEFAULT_PAYMASTER_ADDRESS
    relay_fee_bps: int = DEFAULT_RELAY_FEE_BPS
    indexer_url: str = DEFAULT_INDEXER_URL
    rpc_url: str = DEFAULT_RPC_URL
    bundler_url: str = DEFAULT_BUNDLER_URL
    entry_point_address: str = ERC4337_ENTRYPOINT_ADDRESS
    account_address: str | None = None
    prover_command: list[str] = field(default_factory=lambda: [
        "withdrawal-prover", "--input", "{input}", "--proof", "{proof}", "--public", "{public}",
    ])
    prover_timeout: float = 300.0
    note_index_path: str | None = None
    http_timeout: float = 15.0

    def __post_init__(self) -> None:
        if not 0 <= self.relay_fee_bps <= BPS_DENOMINATOR:
            raise ConfigError(
                f"relay_fee_bps must be within [0, {BPS_DENOMINATOR}], got {self.relay_fee_bps}"
            )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> WithdrawalConfig:
        """
        Build a config from PRIVACY_POOL_* environment variables.

        Unset variables keep their defaults. PRIVACY_POOL_PROVER_COMMAND is
        split with shell quoting rules.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(_ENV_PREFIX + name)
            return value if value not in (None, "") else None

        overrides: dict[str, object] = {}
        for name, attr in (
            ("POOL_ADDRESS", "pool_address"),
            ("PROCESSOR_ADDRESS", "processor_address"),
            ("FEE_RECIPIENT_ADDRESS", "fee_recipient_address"),
            ("INDEXER_URL", "indexer_url"),
            ("RPC_URL", "rpc_url"),
            ("BUNDLER_URL", "bundler_url"),
            ("ENTRY_POINT_ADDRESS", "entry_point_address"),
            ("ACCOUNT_ADDRESS", "account_address"),
            ("NOTE_INDEX_PATH", "note_index_path"),
        ):
            value = get(name)
            if value is not None:
                overrides[attr] = value

        for name, attr, cast in (
            ("CHAIN_ID", "chain_id", int),
            ("RELAY_FEE_BPS", "relay_fee_bps", int),
            ("PROVER_TIMEOUT", "prover_timeout", float),
            ("HTTP_TIMEOUT", "http_timeout", float),
        ):
            value = get(name)
            if value is not None:
                try:
                    overrides[attr] = cast(value)
                except ValueError as err:
                    raise ConfigError(f"Invalid {_ENV_PREFIX}{name}: {value!r}") from err

        command = get("PROVER_COMMAND")
        if command is not None:
            overrides["prover_command"] = shlex.split(command)

        return cls(**overrides)
