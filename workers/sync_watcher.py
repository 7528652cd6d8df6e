import asyncio
import logging
import os
import signal
import sys

import sentry_sdk
from dotenv import load_dotenv

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))
load_dotenv("./.env", override=True)

from logging_config import setup_logging  # noqa: E402
from mailsync.container import ApplicationContainer  # noqa: E402
from settings import settings  # noqa: E402
from workers.sync_worker import SyncWorker  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)

if settings.sentry.is_enabled:
    sentry_sdk.init(dsn=settings.sentry.dsn, environment=settings.environment.value, send_default_pii=False)

container = ApplicationContainer()


async def main() -> None:
    worker = SyncWorker(container.controllers.account_orchestrator(), interval=settings.sync.interval)

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(sig, signal_handler)

    worker.start()
    try:
        await shutdown_event.wait()
    finally:
        logger.info("Initiating graceful shutdown...")
        await worker.stop()
        await container.controllers.imap_connection_pool().close_all()
        await container.controllers.webhook_notifier().close_session()


if __name__ == "__main__":
    logger.info(f"Starting mail sync watcher in {settings.environment.value}")
    try:
        asyncio.run(main())
    except Exception:
        logger.exception("Error in main")
        sys.exit(1)
