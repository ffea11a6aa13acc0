"""
Minimal Ethereum JSON-RPC client and the pool contract reads the withdrawal
pipeline needs.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx
from eth_abi import decode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from privacy_pool.config import DEFAULT_RPC_URL


class RpcError(Exception):
    """Raised when a JSON-RPC endpoint returns an error."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class JsonRpcClient:
    """
    JSON-RPC 2.0 over HTTP.

    Usage:
        rpc = JsonRpcClient("https://rpc.example")
        block = rpc.call("eth_blockNumber")
    """

    def __init__(
        self,
        url: str = DEFAULT_RPC_URL,
        timeout: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.Client(
            headers={"Content-Type": "application/json"}, timeout=timeout
        )
        self._ids = itertools.count(1)

    def call(self, method: str, params: list[Any] | None = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = self._client.post(self.url, json=payload)
        except httpx.HTTPError as err:
            raise RpcError(f"{method}: endpoint unreachable: {err}") from err
        if response.status_code != 200:
            raise RpcError(f"{method}: HTTP {response.status_code}: {response.text}")

        body = response.json()
        if body.get("error"):
            error = body["error"]
            raise RpcError(f"{method}: {error.get('message', error)}", code=error.get("code"))
        if "result" not in body:
            raise RpcError(f"{method}: response has no result")
        return body["result"]

    def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return self.call("eth_call", [{"to": to_checksum_address(to), "data": data}, block])

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JsonRpcClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


class PoolContract:
    """Read-only view of a deployed privacy pool."""

    SCOPE_SELECTOR = "0x" + function_signature_to_4byte_selector("SCOPE()").hex()

    def __init__(self, rpc: JsonRpcClient, pool_address: str) -> None:
        self.rpc = rpc
        self.pool_address = pool_address

    def fetch_pool_scope(self) -> int:
        """Return the pool's SCOPE(), the identifier binding its commitments and nullifiers."""
        result = self.rpc.eth_call(self.pool_address, self.SCOPE_SELECTOR)
        raw = bytes.fromhex(result.removeprefix("0x"))
        if len(raw) < 32:
            raise RpcError(f"SCOPE() returned {len(raw)} bytes, expected 32")
        (scope,) = decode(["uint256"], raw)
        return scope
