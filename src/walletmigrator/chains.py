"""Network registry for every chain the legacy smart wallet may hold funds on.

Six EVM networks, each with the stable tokens the app supported. cNGN is a
naira-pegged token and needs a rate conversion to be valued in USD.
"""

from dataclasses import dataclass, field
from typing import Optional

from walletmigrator.config import get_settings


@dataclass(frozen=True)
class TokenInfo:
    """An ERC-20 token on one network."""

    symbol: str
    name: str
    address: str
    decimals: int
    pegged_currency: Optional[str] = None  # None = valued 1:1 in USD


@dataclass(frozen=True)
class NetworkDescriptor:
    """Configuration for a supported network."""

    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str
    tokens: tuple[TokenInfo, ...] = field(default_factory=tuple)

    def get_token(self, symbol: str) -> Optional[TokenInfo]:
        """Look up a token by symbol (case-insensitive)."""
        for token in self.tokens:
            if token.symbol.upper() == symbol.upper():
                return token
        return None

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"


def _usdc(address: str, decimals: int = 6) -> TokenInfo:
    return TokenInfo("USDC", "USD Coin", address, decimals)


def _usdt(address: str, decimals: int = 6) -> TokenInfo:
    return TokenInfo("USDT", "Tether USD", address, decimals)


def _cngn(address: str) -> TokenInfo:
    return TokenInfo("cNGN", "cNGN", address, 6, pegged_currency="NGN")


# ======================
# Token lists
# ======================

NETWORK_TOKENS: dict[str, tuple[TokenInfo, ...]] = {
    "Base": (
        _usdc("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"),
        _usdt("0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2"),
        _cngn("0x46c85152bfe9f96829aa94755d9f915f9b10ef5f"),
    ),
    "BNB Smart Chain": (
        _usdt("0x55d398326f99059ff775485246999027b3197955", decimals=18),
        _usdc("0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d", decimals=18),
        _cngn("0xa8aea66b361a8d53e8865c62d142167af28af058"),
    ),
    "Arbitrum One": (
        _usdc("0xaf88d065e77c8cc2239327c5edb3a432268e5831"),
        _usdt("0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9"),
    ),
    "Polygon": (
        _usdc("0x3c499c542cef5e3811e1192ce70d8cc03d5c3359"),
        _usdt("0xc2132d05d31c914a87c6611c10748aeb04b58e8f"),
        _cngn("0x52828daa48c1a9a06f37500882b42daf0be04c3b"),
    ),
    "Scroll": (
        _usdc("0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4"),
        _usdt("0xf55BEC9cafDbE8730f096Aa55dad6D22d44099Df"),
    ),
    "Optimism": (
        _usdc("0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85"),
        _usdt("0x94b008aA00579c1307B0EF2c499aD98a8ce58e58"),
    ),
}

# (name, chain id, explorer) in display order
_NETWORK_METADATA = [
    ("Base", 8453, "https://basescan.org"),
    ("BNB Smart Chain", 56, "https://bscscan.com"),
    ("Arbitrum One", 42161, "https://arbiscan.io"),
    ("Polygon", 137, "https://polygonscan.com"),
    ("Scroll", 534352, "https://scrollscan.com"),
    ("Optimism", 10, "https://optimistic.etherscan.io"),
]


def build_networks() -> dict[str, NetworkDescriptor]:
    """Build the registry from settings (RPC URLs may be overridden per env)."""
    settings = get_settings()
    return {
        name: NetworkDescriptor(
            name=name,
            chain_id=chain_id,
            rpc_url=settings.get_rpc_url(name),
            explorer_url=explorer,
            tokens=NETWORK_TOKENS.get(name, ()),
        )
        for name, chain_id, explorer in _NETWORK_METADATA
    }


_networks: Optional[dict[str, NetworkDescriptor]] = None


def get_networks() -> dict[str, NetworkDescriptor]:
    """Get the loaded network registry (built once, then immutable)."""
    global _networks
    if _networks is None:
        _networks = build_networks()
    return _networks


def get_network(name: str) -> Optional[NetworkDescriptor]:
    """Get a network by display name (case-insensitive)."""
    for network in get_networks().values():
        if network.name.lower() == name.lower():
            return network
    return None


def get_network_by_chain_id(chain_id: int) -> Optional[NetworkDescriptor]:
    for network in get_networks().values():
        if network.chain_id == chain_id:
            return network
    return None
