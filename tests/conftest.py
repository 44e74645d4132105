"""Pytest configuration and fixtures."""

import json
import os
from typing import AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["DRY_RUN"] = "true"
os.environ["API_ACCESS_TOKEN"] = "test-token"
os.environ["AGGREGATOR_URL"] = ""
os.environ["TRACKING_URL"] = ""

from walletmigrator.chains import NETWORK_TOKENS, NetworkDescriptor, _NETWORK_METADATA
from walletmigrator.ledger.models import Base
from walletmigrator.ledger.repository import WalletRepository

OLD_ADDRESS = "0x1111111111111111111111111111111111111111"
NEW_ADDRESS = "0x2222222222222222222222222222222222222222"


def rpc_url_for(name: str) -> str:
    return f"https://{name.lower().replace(' ', '-')}.rpc.test"


@pytest.fixture
def networks() -> dict[str, NetworkDescriptor]:
    """The six production networks, pointed at fake RPC hosts."""
    return {
        name: NetworkDescriptor(
            name=name,
            chain_id=chain_id,
            rpc_url=rpc_url_for(name),
            explorer_url=explorer,
            tokens=NETWORK_TOKENS[name],
        )
        for name, chain_id, explorer in _NETWORK_METADATA
    }


class FakeChain:
    """Answers JSON-RPC batches of balanceOf calls and receipt lookups.

    balances: {rpc_url: {token_address_lower: raw_amount}}
    failing: rpc urls that answer HTTP 500
    receipts: {tx_hash: receipt dict}
    """

    def __init__(
        self,
        balances: Optional[dict[str, dict[str, int]]] = None,
        failing: Optional[set[str]] = None,
        receipts: Optional[dict[str, dict]] = None,
    ):
        self.balances = balances or {}
        self.failing = failing or set()
        self.receipts = receipts or {}
        self.requests: list[httpx.Request] = []

    def _answer(self, url: str, call: dict) -> dict:
        if call["method"] == "eth_call":
            token = call["params"][0]["to"].lower()
            raw = self.balances.get(url, {}).get(token, 0)
            return {"jsonrpc": "2.0", "id": call["id"], "result": hex(raw)}
        if call["method"] == "eth_getTransactionReceipt":
            receipt = self.receipts.get(call["params"][0])
            return {"jsonrpc": "2.0", "id": call["id"], "result": receipt}
        return {"jsonrpc": "2.0", "id": call["id"], "error": {"code": -32601, "message": "not found"}}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}"
        if url in self.failing:
            return httpx.Response(500, text="upstream down")
        body = json.loads(request.content)
        if isinstance(body, list):
            return httpx.Response(200, json=[self._answer(url, call) for call in body])
        return httpx.Response(200, json=self._answer(url, body))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def wallet_repo(db_session: AsyncSession) -> WalletRepository:
    """Create wallet repository for testing."""
    return WalletRepository(db_session)
