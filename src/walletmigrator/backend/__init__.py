from walletmigrator.backend.client import BackendClient

__all__ = ["BackendClient"]
