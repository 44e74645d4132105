from walletmigrator.kyc.client import KYCMigrationClient

__all__ = ["KYCMigrationClient"]
