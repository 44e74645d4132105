"""Simulated smart wallet client for dry-run mode and tests."""

import hashlib
import logging
from typing import Optional

from walletmigrator.exceptions import RpcError
from walletmigrator.transfer.base import SmartWalletClient, TransferCall, TransferStatus

logger = logging.getLogger(__name__)


class DryRunSmartWalletClient(SmartWalletClient):
    """Pretends to submit batches and returns deterministic fake hashes.

    Chains listed in `fail_chains` reject submission; chains in `timeout_chains`
    never confirm. Every call is recorded in `history` as (chain_id, calls).
    """

    def __init__(
        self,
        address: str,
        fail_chains: Optional[set[int]] = None,
        timeout_chains: Optional[set[int]] = None,
    ):
        super().__init__(address)
        self.fail_chains = set(fail_chains or ())
        self.timeout_chains = set(timeout_chains or ())
        self.history: list[tuple[int, list[TransferCall]]] = []
        self.switches: list[int] = []
        self._receipts: dict[str, TransferStatus] = {}

    async def switch_chain(self, chain_id: int) -> None:
        self.switches.append(chain_id)
        self.active_chain_id = chain_id

    async def send_calls(self, calls: list[TransferCall], sponsored: bool = True) -> str:
        if self.active_chain_id is None:
            raise RpcError("No active chain selected")
        chain_id = self.active_chain_id
        if chain_id in self.fail_chains:
            raise RpcError(f"Simulated submission failure on chain {chain_id}")

        self.history.append((chain_id, list(calls)))
        seed = f"{self.address}:{chain_id}:{len(self.history)}".encode()
        tx_hash = "0x" + hashlib.sha256(seed).hexdigest()

        if chain_id in self.timeout_chains:
            self._receipts[tx_hash] = TransferStatus.TIMEOUT
        else:
            self._receipts[tx_hash] = TransferStatus.CONFIRMED

        logger.info(f"[DRY RUN] Batch of {len(calls)} call(s) on chain {chain_id}: {tx_hash}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TransferStatus:
        status = self._receipts.get(tx_hash, TransferStatus.FAILED)
        if status == TransferStatus.TIMEOUT and self.active_chain_id not in self.timeout_chains:
            # Chain recovered since submission
            status = TransferStatus.CONFIRMED
            self._receipts[tx_hash] = status
        return status
