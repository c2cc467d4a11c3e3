#!/usr/bin/env python3
"""
Catalog sync service.

Mirrors clubs and players from bootstrap-static every CATALOG_SYNC_INTERVAL
seconds until SIGTERM/SIGINT. Team snapshots are not refreshed here; they are
fetched on demand through SnapshotCache.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent))

from config import Config
from refresh.orchestrator import SyncOrchestrator
from utils.logger import setup_logging

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


async def run_catalog_service(config: Config, orchestrator_cls=SyncOrchestrator) -> None:
    """Run the catalog loop until a stop signal, then shut the orchestrator down."""
    orchestrator = orchestrator_cls(config)
    await orchestrator.initialize()

    loop = asyncio.get_running_loop()

    def on_signal(signum):
        logger.info("Stop signal received", extra={"signal": signum})
        orchestrator.stop()

    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, on_signal, sig)

    logger.info("Catalog sync service started", extra={
        "environment": config.environment,
        "catalog_sync_interval": config.catalog_sync_interval
    })

    try:
        await orchestrator.run()
    finally:
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)
        await orchestrator.shutdown()


def main() -> int:
    setup_logging()
    try:
        asyncio.run(run_catalog_service(Config()))
    except Exception as e:
        logger.error("Catalog sync service crashed", extra={
            "error": str(e),
            "error_type": type(e).__name__
        }, exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
