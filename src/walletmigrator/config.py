"""Application configuration using pydantic-settings.

Covers the migration client (RPC, backend, relayer, rates) and the backend
service that records wallet deprecations.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Simulate smart wallet transfers (no real transactions)"
    )

    # ======================
    # Backend service
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/walletmigrator.db",
        description="Database connection URL",
    )
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    api_access_token: str = Field(
        default="", description="Bearer token accepted by the deprecate endpoint (empty = dev mode)"
    )

    # ======================
    # Backend client
    # ======================
    backend_url: str = Field(
        default="http://localhost:8000", description="Base URL of the wallet backend"
    )
    access_token: str = Field(default="", description="Bearer token sent to the backend")
    backend_timeout: float = Field(default=30.0, description="Backend HTTP timeout (seconds)")

    # ======================
    # Rates
    # ======================
    aggregator_url: str = Field(
        default="", description="Rate aggregator base URL (empty = rates disabled)"
    )
    rate_currency: str = Field(default="NGN", description="Fiat currency of the pegged token")
    rate_cache_ttl: float = Field(default=300.0, description="Rate cache lifetime (seconds)")
    rate_primary_timeout: float = Field(default=5.0, description="Primary rate fetch timeout")
    rate_fallback_timeout: float = Field(default=3.0, description="Fallback rate fetch timeout")

    # ======================
    # Chain RPC Endpoints
    # ======================
    thirdweb_client_id: str = Field(default="", description="thirdweb RPC client id")
    base_rpc_url: Optional[str] = Field(default=None, description="Base RPC override")
    bsc_rpc_url: str = Field(
        default="https://bsc-dataseed.bnbchain.org/", description="BNB Smart Chain RPC URL"
    )
    arbitrum_rpc_url: Optional[str] = Field(default=None, description="Arbitrum One RPC override")
    polygon_rpc_url: Optional[str] = Field(default=None, description="Polygon RPC override")
    scroll_rpc_url: str = Field(default="https://rpc.scroll.io", description="Scroll RPC URL")
    optimism_rpc_url: str = Field(
        default="https://mainnet.optimism.io", description="Optimism RPC URL"
    )
    rpc_timeout: float = Field(default=15.0, description="JSON-RPC request timeout (seconds)")

    # ======================
    # Sponsored execution
    # ======================
    relayer_url: str = Field(default="", description="Sponsoring relayer base URL")
    relayer_api_key: str = Field(default="", description="Sponsoring relayer API key")
    receipt_timeout: float = Field(
        default=120.0, description="How long the relayer client waits for a receipt"
    )
    receipt_poll_interval: float = Field(default=2.0, description="Receipt polling interval")

    # ======================
    # Identity attestation
    # ======================
    attestation_bucket_seconds: int = Field(
        default=300, description="Width of the nonce time bucket (seconds)"
    )
    attestation_max_age_buckets: int = Field(
        default=2, description="How many past buckets the backend still accepts"
    )

    # ======================
    # Status / tracking
    # ======================
    status_cache_ttl: float = Field(default=30.0, description="Migration status cache lifetime")
    tracking_url: str = Field(default="", description="Analytics endpoint (empty = disabled)")
    tracking_timeout: float = Field(default=2.0, description="Analytics ping timeout")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_rpc_url(self, network: str) -> str:
        """Get RPC URL for a network by display name."""
        thirdweb = {
            "Base": 8453,
            "Arbitrum One": 42161,
            "Polygon": 137,
        }
        overrides = {
            "Base": self.base_rpc_url,
            "Arbitrum One": self.arbitrum_rpc_url,
            "Polygon": self.polygon_rpc_url,
            "BNB Smart Chain": self.bsc_rpc_url,
            "Scroll": self.scroll_rpc_url,
            "Optimism": self.optimism_rpc_url,
        }
        url = overrides.get(network)
        if url:
            return url
        if network in thirdweb:
            return f"https://{thirdweb[network]}.rpc.thirdweb.com/{self.thirdweb_client_id}"
        return ""

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "backend_url": self.backend_url,
            "access_token": "***" if self.access_token else "(not set)",
            "api_access_token": "***" if self.api_access_token else "(not set)",
            "aggregator_url": self.aggregator_url,
            "relayer": {
                "url": self.relayer_url or "(not set)",
                "api_key": "***" if self.relayer_api_key else "(not set)",
            },
            "thirdweb_client_id": "***" if self.thirdweb_client_id else "(not set)",
            "attestation": {
                "bucket_seconds": self.attestation_bucket_seconds,
                "max_age_buckets": self.attestation_max_age_buckets,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
