import asyncio
import json
import logging
import unittest

from config import Config
from refresh.competition import CompetitionStateTracker
from refresh.orchestrator import SyncOrchestrator
from refresh.players import PlayerCatalog
from utils.logger import JSONFormatter

from fakes import FakeClock, FakeFPLClient, InMemoryStore, make_element, make_team


def _orchestrator(fpl, store, **config):
    orchestrator = SyncOrchestrator(Config(supabase_url="http://localhost:54321", supabase_key="test-key", **config))
    competition = CompetitionStateTracker(fpl, clock=FakeClock())
    orchestrator.catalog = PlayerCatalog(fpl, store, competition)
    return orchestrator


class TestSyncCatalog(unittest.IsolatedAsyncioTestCase):
    async def test_success_returns_counts(self):
        fpl = FakeFPLClient(bootstrap={
            "events": [],
            "teams": [make_team(1, "Arsenal", "ARS")],
            "elements": [make_element(10, 1, 3, 100, 120, 900)],
        })
        result = await _orchestrator(fpl, InMemoryStore()).sync_catalog()
        self.assertEqual(result, {"clubs_synced": 1, "players_synced": 1})

    async def test_upstream_failure_is_logged_not_raised(self):
        fpl = FakeFPLClient()
        fpl.failing.add("bootstrap")
        with self.assertLogs("refresh.orchestrator", level="WARNING"):
            self.assertIsNone(await _orchestrator(fpl, InMemoryStore()).sync_catalog())

    async def test_integrity_failure_is_logged_not_raised(self):
        fpl = FakeFPLClient(bootstrap={
            "events": [],
            "teams": [make_team(1, "Arsenal", "ARS")],
            "elements": [make_element(10, 2, 3, 100, 120, 900)],
        })
        store = InMemoryStore()
        with self.assertLogs("refresh.orchestrator", level="ERROR"):
            self.assertIsNone(await _orchestrator(fpl, store).sync_catalog())
        self.assertEqual(store.players, {})

    async def test_run_stops_on_shutdown(self):
        fpl = FakeFPLClient()
        orchestrator = _orchestrator(fpl, InMemoryStore(), catalog_sync_interval=3600)

        task = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.01)
        await orchestrator.shutdown()
        await asyncio.wait_for(task, timeout=1)

        self.assertEqual(fpl.calls["bootstrap"], 1)
        self.assertFalse(orchestrator.running)


class TestJSONFormatter(unittest.TestCase):
    def test_extras_flattened(self):
        record = logging.LogRecord("refresh.snapshots", logging.INFO, __file__, 1, "Team snapshot synced", (), None)
        record.user_id = 42
        record.team_id = "1234567"

        data = json.loads(JSONFormatter().format(record))

        self.assertEqual(data["message"], "Team snapshot synced")
        self.assertEqual(data["level"], "INFO")
        self.assertEqual(data["logger"], "refresh.snapshots")
        self.assertEqual((data["user_id"], data["team_id"]), (42, "1234567"))
        self.assertNotIn("args", data)


if __name__ == "__main__":
    unittest.main()
