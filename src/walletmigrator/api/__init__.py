"""Wallet backend HTTP API."""
