"""Minimal async JSON-RPC client for EVM networks.

Uses httpx directly (eth_call, eth_getTransactionReceipt). A transport can be
injected so tests can answer RPC calls without a network.
"""

import logging
from typing import Any, Optional

import httpx

from walletmigrator.exceptions import RpcError

logger = logging.getLogger(__name__)

# ERC20 balanceOf(address) method signature
BALANCE_OF_SELECTOR = "0x70a08231"


def encode_balance_of(address: str) -> str:
    """Encode balanceOf(address) calldata."""
    address_padded = address.lower().replace("0x", "").zfill(64)
    return f"{BALANCE_OF_SELECTOR}{address_padded}"


def decode_uint256(result: Any) -> int:
    """Decode a uint256 eth_call result. Raises RpcError on malformed data."""
    if not isinstance(result, str) or not result.startswith("0x") or result == "0x":
        raise RpcError(f"Cannot decode uint256 from {result!r}")
    try:
        return int(result, 16)
    except ValueError:
        raise RpcError(f"Cannot decode uint256 from {result!r}")


class JsonRpcClient:
    """JSON-RPC client bound to one RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def call(self, method: str, params: list) -> Any:
        """Make a single JSON-RPC call and return its result."""
        if not self.rpc_url:
            raise RpcError("No RPC URL configured")

        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}
        try:
            async with self._client() as client:
                response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(f"{method} request failed: {e}")

        if response.status_code != 200:
            raise RpcError(f"{method} returned HTTP {response.status_code}")

        data = response.json()
        if "error" in data:
            error = data["error"] or {}
            raise RpcError(error.get("message", "RPC error"), error.get("code"))
        return data.get("result")

    async def batch(self, calls: list[tuple[str, list]]) -> list[Any]:
        """Make a JSON-RPC batch call. Results are returned in request order.

        Any failed entry fails the whole batch.
        """
        if not self.rpc_url:
            raise RpcError("No RPC URL configured")
        if not calls:
            return []

        payload = [
            {"jsonrpc": "2.0", "method": method, "params": params, "id": i}
            for i, (method, params) in enumerate(calls)
        ]
        try:
            async with self._client() as client:
                response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(f"Batch request failed: {e}")

        if response.status_code != 200:
            raise RpcError(f"Batch request returned HTTP {response.status_code}")

        data = response.json()
        if not isinstance(data, list):
            # Some providers answer a batch with a single error object
            message = (data.get("error") or {}).get("message", "Unexpected batch response")
            raise RpcError(message)

        by_id = {item.get("id"): item for item in data}
        results = []
        for i, (method, _) in enumerate(calls):
            item = by_id.get(i)
            if item is None:
                raise RpcError(f"Missing response for {method} (id={i})")
            if "error" in item:
                error = item["error"] or {}
                raise RpcError(error.get("message", "RPC error"), error.get("code"))
            results.append(item.get("result"))
        return results

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        """Get a transaction receipt, or None while still pending."""
        return await self.call("eth_getTransactionReceipt", [tx_hash])
