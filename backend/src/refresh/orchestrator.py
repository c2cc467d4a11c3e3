"""
Sync Orchestrator - wires the sync/analytics components and runs the catalog loop.

Every component is constructed once here, so the schedule caches owned by the
CompetitionStateTracker are shared by reference across the process.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from config import Config
from database.supabase_client import SupabaseClient
from fpl_api.client import FPLAPIClient, UpstreamUnavailable
from refresh.competition import CompetitionStateTracker
from refresh.errors import DataIntegrityError
from refresh.players import PlayerCatalog
from refresh.snapshots import SnapshotCache
from refresh.squad import SquadProjector
from refresh.transfers import TransferAdvisor

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Owns the clients and components; runs the periodic catalog bulk sync."""

    def __init__(self, config: Config):
        self.config = config
        self.fpl_client: Optional[FPLAPIClient] = None
        self.db_client: Optional[SupabaseClient] = None
        self.competition: Optional[CompetitionStateTracker] = None
        self.snapshots: Optional[SnapshotCache] = None
        self.catalog: Optional[PlayerCatalog] = None
        self.squad: Optional[SquadProjector] = None
        self.transfers: Optional[TransferAdvisor] = None
        self.running = False
        self._stop_event = asyncio.Event()

    async def initialize(self):
        """Initialize clients and components."""
        logger.info("Orchestrator starting")

        self.fpl_client = FPLAPIClient(self.config)
        self.db_client = SupabaseClient(self.config)
        self.competition = CompetitionStateTracker(
            self.fpl_client,
            ttl=timedelta(seconds=self.config.schedule_cache_ttl),
        )
        self.snapshots = SnapshotCache(self.fpl_client, self.db_client, self.competition)
        self.catalog = PlayerCatalog(self.fpl_client, self.db_client, self.competition)
        self.squad = SquadProjector(self.fpl_client, self.snapshots, self.catalog)
        self.transfers = TransferAdvisor(self.squad, self.catalog, self.competition)

        logger.info("Orchestrator ready")

    def stop(self):
        """Ask the catalog loop to exit after its current iteration."""
        self.running = False
        self._stop_event.set()

    async def shutdown(self):
        """Shutdown orchestrator gracefully."""
        logger.info("Orchestrator shutting down")
        self.stop()

        if self.fpl_client:
            await self.fpl_client.close()

        logger.info("Orchestrator stopped")

    async def sync_catalog(self) -> Optional[Dict[str, int]]:
        """
        Run one catalog bulk sync.

        Failures are logged and swallowed so the loop retries on its next tick;
        call ``catalog.bulk_sync()`` directly to have them raised.
        """
        try:
            return await self.catalog.bulk_sync()
        except UpstreamUnavailable as e:
            logger.warning("Catalog sync skipped: FPL API unavailable", extra={
                "error": str(e)
            })
        except DataIntegrityError as e:
            logger.error("Catalog sync aborted: inconsistent bootstrap payload", extra={
                "error": str(e)
            })
        return None

    async def run(self):
        """Bulk-sync the catalog every ``catalog_sync_interval`` seconds until shutdown."""
        self.running = True
        interval = self.config.catalog_sync_interval

        while self.running:
            await self.sync_catalog()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
