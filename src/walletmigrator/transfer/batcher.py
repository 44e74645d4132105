"""Per-network batched transfer of all non-zero balances.

Networks are processed strictly one after another. The smart wallet client has
a single active chain, so the chain switch and the submission for a network
happen together while the client's chain lock is held. A failure on one network
is recorded on its batch and never stops the others.
"""

import logging
from typing import Iterable, Optional

from walletmigrator.balances.models import BalanceSnapshot
from walletmigrator.exceptions import SmartWalletUnavailableError
from walletmigrator.transfer.base import (
    SmartWalletClient,
    TransferBatch,
    TransferCall,
    TransferReport,
    TransferStatus,
)
from walletmigrator.transfer.encoding import encode_transfer, to_base_units

logger = logging.getLogger(__name__)


def build_transfer_calls(snapshot: BalanceSnapshot, new_address: str) -> list[TransferCall]:
    """Encode one transfer call per token with a non-zero balance.

    Exact on-chain base units are used when known; otherwise the display
    amount is converted with the token's decimals.
    """
    calls = []
    for token in snapshot.network.tokens:
        raw = snapshot.raw_balances.get(token.symbol)
        if raw is None:
            amount = snapshot.balances.get(token.symbol)
            if amount is None:
                continue
            raw = to_base_units(amount, token.decimals)
        if raw <= 0:
            continue
        calls.append(
            TransferCall(
                symbol=token.symbol,
                token_address=token.address,
                amount_wei=raw,
                data=encode_transfer(new_address, raw),
            )
        )
    return calls


class TransferBatcher:
    """Moves every non-zero token balance from the smart wallet to the new wallet."""

    def __init__(self, client: Optional[SmartWalletClient]):
        self.client = client

    async def transfer_all(
        self,
        snapshots: Iterable[BalanceSnapshot],
        old_address: str,
        new_address: str,
        previous: Optional[TransferReport] = None,
    ) -> TransferReport:
        """Submit one sponsored batch per network holding funds.

        Args:
            snapshots: Balance snapshots of old_address
            old_address: Legacy smart wallet (source)
            new_address: New EOA (destination)
            previous: Report of an earlier attempt. Confirmed networks are not
                resubmitted; timed-out ones are re-checked by hash first.

        Returns:
            TransferReport with one batch per network that held funds

        Raises:
            SmartWalletUnavailableError: If there is no client for old_address
        """
        client = self.client
        if client is None:
            raise SmartWalletUnavailableError("No smart wallet client available")
        if client.address.lower() != old_address.lower():
            raise SmartWalletUnavailableError(
                f"Smart wallet client is for {client.address}, not {old_address}"
            )

        earlier = {}
        if previous is not None:
            earlier = {batch.network_name: batch for batch in previous.batches}

        report = TransferReport()
        for snapshot in snapshots:
            name = snapshot.network_name

            if not snapshot.ok:
                logger.warning(f"Skipping {name}: balance unknown ({snapshot.error})")
                report.unavailable_networks.append(name)
                continue

            prior = earlier.get(name)
            if prior is not None and prior.confirmed:
                report.batches.append(prior)
                continue

            if not snapshot.has_funds:
                report.skipped_networks.append(name)
                continue

            try:
                batch = await self._transfer_network(client, snapshot, new_address, prior)
            except SmartWalletUnavailableError as e:
                # Keep finished and earlier batches so a retry never resubmits them
                done = {b.network_name for b in report.batches}
                report.batches.extend(b for n, b in earlier.items() if n not in done)
                logger.error(
                    f"Smart wallet client dropped out on {name} after "
                    f"{len(report.confirmed)} confirmed batches: {e}"
                )
                raise SmartWalletUnavailableError(str(e), report=report) from e
            report.batches.append(batch)

        logger.info(
            f"Transfer from {old_address}: {len(report.confirmed)} confirmed, "
            f"{len(report.failed)} failed, {len(report.skipped_networks)} skipped"
        )
        return report

    async def _transfer_network(
        self,
        client: SmartWalletClient,
        snapshot: BalanceSnapshot,
        new_address: str,
        prior: Optional[TransferBatch],
    ) -> TransferBatch:
        network = snapshot.network
        calls: list[TransferCall] = []
        tx_hash = None

        try:
            calls = build_transfer_calls(snapshot, new_address)

            async with client.chain_lock:
                await client.switch_chain(network.chain_id)

                if prior is not None and prior.status == TransferStatus.TIMEOUT and prior.tx_hash:
                    # The earlier submission may still land; never submit twice
                    status = await client.wait_for_receipt(prior.tx_hash)
                    if status != TransferStatus.FAILED:
                        return TransferBatch(network, prior.calls, status, prior.tx_hash)
                    logger.info(f"Earlier batch {prior.tx_hash} on {network.name} failed, resubmitting")

                tx_hash = await client.send_calls(calls, sponsored=True)
                status = await client.wait_for_receipt(tx_hash)

        except SmartWalletUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Transfer on {network.name} failed: {e}")
            return TransferBatch(network, calls, TransferStatus.FAILED, tx_hash, str(e))

        if status == TransferStatus.FAILED:
            logger.error(f"Batch {tx_hash} on {network.name} reverted")
            return TransferBatch(network, calls, status, tx_hash, "Transaction reverted")
        if status == TransferStatus.TIMEOUT:
            return TransferBatch(network, calls, status, tx_hash, "Confirmation timed out")
        return TransferBatch(network, calls, status, tx_hash)
