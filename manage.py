#!/usr/bin/env python3
"""
Mail sync management commands.

Usage:
    python manage.py [--mode MODE]

Modes:
    - run: Start the periodic sync worker until interrupted (default)
    - once: Run a single sync cycle and exit
    - list: List syncable accounts and their sync status
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv(override=True)
from logging_config import setup_logging  # noqa: E402
from mailsync.container import ApplicationContainer  # noqa: E402
from mailsync.db import database_context  # noqa: E402
from settings import settings  # noqa: E402
from workers.sync_worker import SyncWorker  # noqa: E402

setup_logging()

logger = logging.getLogger(__name__)

container = ApplicationContainer()


def build_worker() -> SyncWorker:
    return SyncWorker(container.controllers.account_orchestrator(), interval=settings.sync.interval)


async def shutdown() -> None:
    await container.controllers.imap_connection_pool().close_all()
    await container.controllers.webhook_notifier().close_session()


async def run_forever() -> None:
    worker = build_worker()
    worker.start()
    try:
        await asyncio.Event().wait()
    finally:
        await worker.stop()
        await shutdown()


async def run_once() -> None:
    try:
        result = await build_worker().run_once()
    finally:
        await shutdown()

    if result is None:
        raise RuntimeError("Sync cycle failed, see logs")
    for account in result.accounts:
        logger.info(f"{account.email:40} {account.status:10} saved={account.saved} errors={account.errors}")


async def list_accounts() -> None:
    """List all syncable accounts in the database."""
    async with database_context():
        accounts = await container.repos.account().get_syncable()

        if not accounts:
            logger.info("No active accounts found in database.")
            return

        logger.info(f"Found {len(accounts)} active accounts:")
        logger.info("-" * 80)
        for i, account in enumerate(accounts, 1):
            flags = "needs reconnection" if account.needs_reconnection else ""
            logger.info(f"{i:3d}. {account.email:40} {account.sync_status.name:10} {flags}")
        logger.info("-" * 80)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Mail sync management")
    parser.add_argument("--mode", choices=["run", "once", "list"], default="run", help="Operating mode")

    args = parser.parse_args()

    try:
        if args.mode == "run":
            asyncio.run(run_forever())
        elif args.mode == "once":
            asyncio.run(run_once())
        elif args.mode == "list":
            asyncio.run(list_accounts())

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Command failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
