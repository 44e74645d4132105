"""Component tests for configuration, the network registry and the CLI."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from walletmigrator import cli
from walletmigrator.balances.models import BalanceSnapshot
from walletmigrator.chains import get_network, get_network_by_chain_id, get_networks
from walletmigrator.config import Settings
from walletmigrator.kyc.client import KYCMigrationClient
from walletmigrator.utils.inflight import InFlightRequests

from tests.conftest import NEW_ADDRESS, OLD_ADDRESS


class TestSettings:
    """Tests for Settings helpers."""

    def test_thirdweb_rpc_url(self):
        settings = Settings(thirdweb_client_id="abc", base_rpc_url=None)
        assert settings.get_rpc_url("Base") == "https://8453.rpc.thirdweb.com/abc"

    def test_rpc_override_wins(self):
        settings = Settings(polygon_rpc_url="https://polygon.example")
        assert settings.get_rpc_url("Polygon") == "https://polygon.example"

    def test_unknown_network(self):
        assert Settings().get_rpc_url("Solana") == ""

    def test_safe_dict_redacts(self):
        settings = Settings(
            database_url="postgresql+asyncpg://user:secret@db/app",
            relayer_api_key="key",
        )
        safe = settings.get_safe_dict()
        assert "secret" not in safe["database_url"]
        assert safe["relayer"]["api_key"] == "***"


class TestNetworkRegistry:
    """Tests for the network registry."""

    def test_six_networks(self):
        assert list(get_networks()) == [
            "Base", "BNB Smart Chain", "Arbitrum One", "Polygon", "Scroll", "Optimism",
        ]

    def test_lookup(self):
        assert get_network("base").chain_id == 8453
        assert get_network_by_chain_id(10).name == "Optimism"
        assert get_network("Ethereum") is None

    def test_pegged_token(self):
        cngn = get_network("Polygon").get_token("cngn")
        assert cngn.pegged_currency == "NGN"
        assert get_network("Base").get_token("USDC").pegged_currency is None


class TestInFlightRequests:
    """Tests for request de-duplication."""

    @pytest.mark.asyncio
    async def test_key_released_after_completion(self):
        inflight = InFlightRequests()
        factory = AsyncMock(return_value=1)

        assert await inflight.run("k", factory) == 1
        assert "k" not in inflight
        assert len(inflight) == 0

    @pytest.mark.asyncio
    async def test_errors_propagate_and_release(self):
        inflight = InFlightRequests()

        with pytest.raises(RuntimeError):
            await inflight.run("k", AsyncMock(side_effect=RuntimeError("boom")))
        assert "k" not in inflight


class TestKYCClient:
    """Tests for KYC client failure handling."""

    @pytest.mark.asyncio
    async def test_status_failure_is_unverified(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        client = KYCMigrationClient("https://api.test", transport=transport)

        assert await client.get_kyc_status(OLD_ADDRESS) is False

    @pytest.mark.asyncio
    async def test_migrate_transport_error_is_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = KYCMigrationClient("https://api.test", transport=httpx.MockTransport(handler))
        attestation = MagicMock(signature="0x1", nonce="a-0123456789abcdef")

        assert await client.migrate_kyc(OLD_ADDRESS, NEW_ADDRESS, attestation) is False


class TestCLI:
    """Tests for the command line entry point."""

    def test_balances_command(self, networks, capsys):
        aggregator = MagicMock()
        aggregator.fetch_all_network_balances = AsyncMock(return_value=[
            BalanceSnapshot(networks["Base"], OLD_ADDRESS, balances={"USDC": Decimal("12.5")},
                            raw_balances={"USDC": 12_500_000}, total=Decimal("12.5")),
            BalanceSnapshot.failed(networks["Scroll"], OLD_ADDRESS, "rpc down"),
        ])

        with patch.object(cli, "get_balance_aggregator", return_value=aggregator):
            assert cli.main(["balances", OLD_ADDRESS]) == 0

        out = capsys.readouterr().out
        assert "12.5 USDC" in out
        assert "rpc down" in out
        assert "$12.50" in out

    def test_status_unavailable(self, capsys):
        provider = MagicMock()
        provider.get_status = AsyncMock(return_value=None)

        with patch.object(cli, "get_status_provider", return_value=provider):
            assert cli.main(["status", "user-1"]) == 1

        assert "unavailable" in capsys.readouterr().out
