#!/usr/bin/env python3
"""
Run one catalog bulk sync (clubs, then players) from bootstrap-static.

Unlike the service loop, failures are raised: a DataIntegrityError here means
the bootstrap payload referenced a club it did not contain and no players
were written.

Usage (from backend directory):
    python3 scripts/sync_catalog.py
"""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import Config
from refresh.orchestrator import SyncOrchestrator
from utils.logger import setup_logging


async def sync_catalog() -> None:
    setup_logging()
    orchestrator = SyncOrchestrator(Config())
    await orchestrator.initialize()

    try:
        result = await orchestrator.catalog.bulk_sync()
        print(f"Synced {result['clubs_synced']} clubs and {result['players_synced']} players.")
    finally:
        await orchestrator.shutdown()


if __name__ == "__main__":
    asyncio.run(sync_catalog())
