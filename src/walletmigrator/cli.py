"""Command line entry point.

    walletmigrator serve
    walletmigrator balances 0xOLD
    walletmigrator status USER_ID
    walletmigrator migrate 0xOLD USER_ID --yes
"""

import argparse
import asyncio
import logging
import os
import sys

from walletmigrator.balances.models import sum_totals
from walletmigrator.config import get_settings
from walletmigrator.exceptions import MigrationError
from walletmigrator.main import configure_logging
from walletmigrator.migration.factory import (
    create_orchestrator,
    get_balance_aggregator,
    get_status_provider,
)
from walletmigrator.migration.session import MigrationStep

logger = logging.getLogger(__name__)


async def show_balances(address: str) -> int:
    aggregator = get_balance_aggregator()
    snapshots = await aggregator.fetch_all_network_balances(address)

    for snapshot in snapshots:
        if snapshot.error:
            print(f"{snapshot.network_name:<18} error: {snapshot.error}")
            continue
        tokens = ", ".join(f"{amount} {symbol}" for symbol, amount in snapshot.non_zero_tokens().items())
        approx = "~" if snapshot.total_is_approximate else ""
        print(f"{snapshot.network_name:<18} {approx}${snapshot.total:.2f}  {tokens or '-'}")

    print(f"{'Total':<18} ${sum_totals(snapshots):.2f}")
    return 0


async def show_status(user_id: str) -> int:
    provider = get_status_provider()
    status = await provider.get_status(user_id)
    if status is None:
        print("Migration status unavailable")
        return 1
    print(f"migrationCompleted={status.migration_completed} hasSmartWallet={status.has_smart_wallet}")
    return 0


async def run_migration(old_address: str, user_id: str, key_env: str, assume_yes: bool) -> int:
    from walletmigrator.signing.local import LocalMessageSigner

    private_key = os.environ.get(key_env)
    if not private_key:
        print(f"{key_env} is not set")
        return 2
    signer = LocalMessageSigner(private_key)

    orchestrator = create_orchestrator(old_address, signer.address, user_id, signer)
    orchestrator.add_listener(lambda s: print(f"-> {s.step.value}"))

    session = await orchestrator.start()
    if session.step == MigrationStep.REVIEWING_TRANSFER:
        for snapshot in session.reviewed_snapshots or []:
            if snapshot.has_funds:
                print(f"  {snapshot.network_name}: {snapshot.non_zero_tokens()}")
        if not assume_yes and input("Transfer these balances? [y/N] ").strip().lower() != "y":
            orchestrator.cancel()
            return 1
        session = await orchestrator.approve_transfer()

    if session.step == MigrationStep.FAILURE and session.failure:
        print(f"{session.failure.message} ({session.failure.retry_action.value})")
        return 1

    for name, tx_hash in session.tx_hashes.items():
        print(f"  {name}: {tx_hash}")
    print(f"Migration finished: {session.step.value}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Smart wallet to EOA migration")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the wallet backend API")

    balances = subparsers.add_parser("balances", help="Show balances on every network")
    balances.add_argument("address", help="Wallet address")

    status = subparsers.add_parser("status", help="Show migration status of a user")
    status.add_argument("user_id", help="Identity provider user ID")

    migrate = subparsers.add_parser("migrate", help="Migrate a smart wallet to the signer's EOA")
    migrate.add_argument("old_address", help="Legacy smart wallet address")
    migrate.add_argument("user_id", help="Identity provider user ID")
    migrate.add_argument(
        "--key-env", default="MIGRATION_SIGNER_KEY",
        help="Environment variable holding the new wallet's private key",
    )
    migrate.add_argument("--yes", action="store_true", help="Approve transfers without asking")

    args = parser.parse_args(argv)

    if args.command == "serve":
        from walletmigrator.main import main as serve

        serve()
        return 0

    configure_logging(get_settings().debug)
    try:
        if args.command == "balances":
            return asyncio.run(show_balances(args.address))
        if args.command == "status":
            return asyncio.run(show_status(args.user_id))
        return asyncio.run(run_migration(args.old_address, args.user_id, args.key_env, args.yes))
    except MigrationError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
