"""Wallet Migrator - moves users from a legacy smart wallet to an EOA across EVM networks."""

__version__ = "0.1.0"
