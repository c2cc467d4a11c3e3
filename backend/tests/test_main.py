import asyncio
import signal
import unittest

from config import Config
from main import run_catalog_service


class _RecordingOrchestrator:
    def __init__(self, config):
        self.config = config
        self.events = []
        self._stopped = asyncio.Event()
        _RecordingOrchestrator.last = self

    async def initialize(self):
        self.events.append("initialize")

    async def run(self):
        self.events.append("run")
        signal.raise_signal(signal.SIGTERM)
        await asyncio.wait_for(self._stopped.wait(), timeout=1)

    def stop(self):
        self.events.append("stop")
        self._stopped.set()

    async def shutdown(self):
        self.events.append("shutdown")


class _FailingOrchestrator(_RecordingOrchestrator):
    async def run(self):
        self.events.append("run")
        raise RuntimeError("loop crashed")


class TestRunCatalogService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.config = Config(supabase_url="http://localhost:54321", supabase_key="test-key")

    async def test_sigterm_stops_loop_then_shuts_down(self):
        await run_catalog_service(self.config, orchestrator_cls=_RecordingOrchestrator)

        self.assertEqual(
            _RecordingOrchestrator.last.events,
            ["initialize", "run", "stop", "shutdown"],
        )

    async def test_shutdown_runs_when_loop_fails(self):
        with self.assertRaises(RuntimeError):
            await run_catalog_service(self.config, orchestrator_cls=_FailingOrchestrator)

        self.assertEqual(_FailingOrchestrator.last.events, ["initialize", "run", "shutdown"])
        self.assertFalse(asyncio.get_running_loop().remove_signal_handler(signal.SIGTERM))


if __name__ == "__main__":
    unittest.main()
