"""Smart wallet client backed by a sponsoring relayer.

The relayer accepts a batch of calls from the smart wallet and pays gas for it:

    POST {relayer_url}/v1/chains/{chainId}/batch
    {"from": "0x..", "calls": [{"to", "data", "value"}], "sponsored": true}
    -> {"txHash": "0x.."}

Receipts are polled from the network's own RPC endpoint.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from walletmigrator.chains import NetworkDescriptor, get_networks
from walletmigrator.exceptions import RpcError, SmartWalletUnavailableError
from walletmigrator.rpc import JsonRpcClient
from walletmigrator.transfer.base import SmartWalletClient, TransferCall, TransferStatus

logger = logging.getLogger(__name__)


class RelayerSmartWalletClient(SmartWalletClient):
    """Submits sponsored batches through an HTTP relayer."""

    def __init__(
        self,
        address: str,
        relayer_url: str,
        api_key: str = "",
        networks: Optional[dict[str, NetworkDescriptor]] = None,
        timeout: float = 30.0,
        receipt_timeout: float = 120.0,
        poll_interval: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(address)
        self.relayer_url = relayer_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self._transport = transport
        networks = networks if networks is not None else get_networks()
        self._by_chain_id = {n.chain_id: n for n in networks.values()}

    @classmethod
    def from_settings(cls, address: str, settings, **kwargs) -> "RelayerSmartWalletClient":
        if not settings.relayer_url:
            raise SmartWalletUnavailableError("Relayer URL is not configured")
        return cls(
            address=address,
            relayer_url=settings.relayer_url,
            api_key=settings.relayer_api_key,
            receipt_timeout=settings.receipt_timeout,
            poll_interval=settings.receipt_poll_interval,
            **kwargs,
        )

    def _active_network(self) -> NetworkDescriptor:
        if self.active_chain_id is None:
            raise RpcError("No active chain selected")
        return self._by_chain_id[self.active_chain_id]

    async def is_ready(self) -> bool:
        return bool(self.relayer_url)

    async def switch_chain(self, chain_id: int) -> None:
        if chain_id not in self._by_chain_id:
            raise RpcError(f"Unsupported chain: {chain_id}")
        if self.active_chain_id != chain_id:
            logger.debug(f"Switching smart wallet {self.address} to chain {chain_id}")
        self.active_chain_id = chain_id

    async def send_calls(self, calls: list[TransferCall], sponsored: bool = True) -> str:
        network = self._active_network()
        payload = {
            "from": self.address,
            "calls": [{"to": c.token_address, "data": c.data, "value": hex(c.value)} for c in calls],
            "sponsored": sponsored,
        }
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        url = f"{self.relayer_url}/v1/chains/{network.chain_id}/batch"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise RpcError(f"Relayer request failed on {network.name}: {e}")

        if response.status_code != 200:
            raise RpcError(f"Relayer returned HTTP {response.status_code} on {network.name}")

        tx_hash = response.json().get("txHash")
        if not tx_hash:
            raise RpcError(f"Relayer returned no transaction hash on {network.name}")

        logger.info(f"Submitted batch of {len(calls)} call(s) on {network.name}: {tx_hash}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TransferStatus:
        network = self._active_network()
        rpc = JsonRpcClient(network.rpc_url, transport=self._transport)
        deadline = time.monotonic() + self.receipt_timeout

        while True:
            try:
                receipt = await rpc.get_transaction_receipt(tx_hash)
            except RpcError as e:
                # Transient RPC problems do not decide the outcome; keep polling
                logger.warning(f"Receipt lookup failed on {network.name}: {e}")
                receipt = None

            if receipt:
                status = int(receipt.get("status", "0x0"), 16)
                return TransferStatus.CONFIRMED if status == 1 else TransferStatus.FAILED

            if time.monotonic() >= deadline:
                logger.warning(f"No receipt for {tx_hash} on {network.name} after {self.receipt_timeout}s")
                return TransferStatus.TIMEOUT
            await asyncio.sleep(self.poll_interval)
