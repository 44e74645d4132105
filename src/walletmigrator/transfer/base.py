"""Base interfaces for smart wallet transfers.

Transfer flow (per network):
1. Switch the smart wallet client to the network's chain
2. Encode one ERC-20 transfer per non-zero token
3. Submit all calls as one sponsored (gasless) batched transaction
4. Wait for one confirmation
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from walletmigrator.chains import NetworkDescriptor

logger = logging.getLogger(__name__)


class TransferStatus(str, Enum):
    """Outcome of one network's batched transfer."""

    CONFIRMED = "confirmed"  # Receipt with status 1
    FAILED = "failed"        # Reverted, rejected or RPC error
    TIMEOUT = "timeout"      # Submitted, no receipt within the client's wait


@dataclass(frozen=True)
class TransferCall:
    """One ERC-20 transfer call inside a batch."""

    symbol: str
    token_address: str
    amount_wei: int
    data: str
    value: int = 0


@dataclass
class TransferBatch:
    """One submitted batched transaction on one network.

    Immutable in practice once status is CONFIRMED or FAILED.
    """

    network: NetworkDescriptor
    calls: list[TransferCall]
    status: TransferStatus
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def network_name(self) -> str:
        return self.network.name

    @property
    def confirmed(self) -> bool:
        return self.status == TransferStatus.CONFIRMED


@dataclass
class TransferReport:
    """Result of transfer_all()."""

    batches: list[TransferBatch] = field(default_factory=list)
    skipped_networks: list[str] = field(default_factory=list)      # zero balance
    unavailable_networks: list[str] = field(default_factory=list)  # balance unknown

    @property
    def confirmed(self) -> list[TransferBatch]:
        return [b for b in self.batches if b.confirmed]

    @property
    def failed(self) -> list[TransferBatch]:
        return [b for b in self.batches if not b.confirmed]

    @property
    def tx_hashes(self) -> dict[str, str]:
        """Confirmed transaction hash per network."""
        return {b.network_name: b.tx_hash for b in self.confirmed if b.tx_hash}


class SmartWalletClient(ABC):
    """Signing client of the legacy smart wallet.

    It has exactly one active chain at a time. `chain_lock` must be held by
    whoever switches the chain and submits, for the whole switch/submit/wait
    sequence.
    """

    def __init__(self, address: str):
        self.address = address
        self.active_chain_id: Optional[int] = None
        self.chain_lock = asyncio.Lock()

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        """Make chain_id the active chain."""
        pass

    @abstractmethod
    async def send_calls(self, calls: list[TransferCall], sponsored: bool = True) -> str:
        """Submit calls as one batched transaction on the active chain.

        Returns:
            Transaction hash
        """
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> TransferStatus:
        """Wait for one confirmation of tx_hash on the active chain."""
        pass

    async def is_ready(self) -> bool:
        """Check if the client can sign and submit."""
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address}, chain={self.active_chain_id})"
