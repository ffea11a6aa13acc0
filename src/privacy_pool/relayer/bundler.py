"""
Account layer: the smart account that submits relay calls, and the ERC-4337
bundler that carries its user operations.

Signing belongs to the wallet layer. An AccountHandle may carry a `signer`
callable; without one, operations can be prepared for preview but not
executed.

Architecture:
    relay calldata
        -> SimpleAccount.execute(entrypoint, 0, relayCallData)
        -> UserOperation(sender=account, nonce=EntryPoint.getNonce(account, 0))
        -> eth_estimateUserOperationGas (bundler) + fee quote (RPC)
        -> [signer] -> eth_sendUserOperation (bundler)
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from privacy_pool.config import WithdrawalConfig
from privacy_pool.core.address import normalize_address
from privacy_pool.core.models import AccountHandle, UserOperation
from privacy_pool.core.rpc import JsonRpcClient

logger = logging.getLogger("privacy_pool.bundler")

EXECUTE_SELECTOR = function_signature_to_4byte_selector("execute(address,uint256,bytes)")
GET_NONCE_SELECTOR = function_signature_to_4byte_selector("getNonce(address,uint192)")


class BundlerError(Exception):
    """Raised when the account layer cannot prepare or submit an operation."""
    pass


class AccountLayer(Protocol):
    def create_withdrawal_account_handle(self) -> AccountHandle: ...

    def prepare_withdrawal_operation(self, handle: AccountHandle, call_data: str) -> UserOperation: ...

    def execute_withdrawal_operation(self, handle: AccountHandle, operation: UserOperation) -> str: ...


class BundlerClient:
    """
    ERC-4337 account layer backed by a bundler and a chain RPC.

    Usage:
        accounts = BundlerClient(bundler, rpc, config, signer=my_wallet.sign_user_operation)
        handle = accounts.create_withdrawal_account_handle()
        op = accounts.prepare_withdrawal_operation(handle, relay_call_data)
        user_op_hash = accounts.execute_withdrawal_operation(handle, op)
    """

    def __init__(
        self,
        bundler: JsonRpcClient,
        rpc: JsonRpcClient,
        config: WithdrawalConfig,
        signer: Callable[[UserOperation], str] | None = None,
    ) -> None:
        self.bundler = bundler
        self.rpc = rpc
        self.config = config
        self.signer = signer

    def create_withdrawal_account_handle(self) -> AccountHandle:
        if not self.config.account_address:
            raise BundlerError("No smart account configured (set PRIVACY_POOL_ACCOUNT_ADDRESS)")
        return AccountHandle(
            address=normalize_address(self.config.account_address),
            entry_point=to_checksum_address(self.config.entry_point_address),
            chain_id=self.config.chain_id,
            signer=self.signer,
        )

    def prepare_withdrawal_operation(self, handle: AccountHandle, call_data: str) -> UserOperation:
        """Wrap `call_data` in an account execute() call and fill nonce, gas and fees."""
        execute_data = self._encode_execute(self.config.processor_address, call_data)
        operation = UserOperation(
            sender=handle.address,
            nonce=self._get_nonce(handle),
            call_data=execute_data,
        )

        gas = self.bundler.call(
            "eth_estimateUserOperationGas", [operation.to_rpc(), handle.entry_point]
        )
        max_fee = int(self.rpc.call("eth_gasPrice"), 16)
        priority_fee = int(self.rpc.call("eth_maxPriorityFeePerGas"), 16)

        operation = operation.model_copy(update={
            "call_gas_limit": int(gas["callGasLimit"], 16),
            "verification_gas_limit": int(gas["verificationGasLimit"], 16),
            "pre_verification_gas": int(gas["preVerificationGas"], 16),
            "max_fee_per_gas": max_fee,
            "max_priority_fee_per_gas": min(priority_fee, max_fee),
        })
        logger.debug(f"Prepared user operation for {handle.address} (nonce {operation.nonce})")
        return operation

    def execute_withdrawal_operation(self, handle: AccountHandle, operation: UserOperation) -> str:
        """Sign through the handle's signer and submit. Returns the user operation hash."""
        if handle.signer is None:
            raise BundlerError(f"Account {handle.address} has no signer; cannot execute")
        signed = operation.model_copy(update={"signature": handle.signer(operation)})
        result = self.bundler.call("eth_sendUserOperation", [signed.to_rpc(), handle.entry_point])
        return str(result)

    def _get_nonce(self, handle: AccountHandle) -> int:
        data = "0x" + (GET_NONCE_SELECTOR + encode(["address", "uint192"], [handle.address, 0])).hex()
        result = self.rpc.eth_call(handle.entry_point, data)
        (nonce,) = decode(["uint256"], bytes.fromhex(result.removeprefix("0x")))
        return nonce

    @staticmethod
    def _encode_execute(target: str, call_data: str) -> str:
        inner = bytes.fromhex(call_data.removeprefix("0x"))
        args = encode(["address", "uint256", "bytes"], [to_checksum_address(target), 0, inner])
        return "0x" + (EXECUTE_SELECTOR + args).hex()
