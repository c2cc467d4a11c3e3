import unittest
from datetime import timedelta

from fpl_api.client import UpstreamUnavailable
from refresh.competition import CompetitionStateTracker, GameweekPhase
from refresh.errors import NoLinkedTeam
from refresh.snapshots import FreshnessDecision, SnapshotCache, decide_freshness, map_leagues

from fakes import (
    NOW,
    FakeClock,
    FakeFPLClient,
    InMemoryStore,
    make_entry,
    make_event,
    make_fixture,
    make_league,
)

USER_ID = 42
TEAM_ID = "1234567"


class TestDecideFreshness(unittest.TestCase):
    def test_never_synced_refreshes(self):
        self.assertIs(decide_freshness(None, GameweekPhase.GAMEWEEK_FINAL_OR_OFF, NOW), FreshnessDecision.REFRESH)

    def test_match_window_allows_ten_minutes(self):
        phase = GameweekPhase.DURING_MATCH_WINDOW
        self.assertIs(decide_freshness(NOW - timedelta(minutes=10), phase, NOW), FreshnessDecision.USE_CACHED)
        self.assertIs(decide_freshness(NOW - timedelta(minutes=11), phase, NOW), FreshnessDecision.REFRESH)

    def test_final_allows_twelve_hours(self):
        phase = GameweekPhase.GAMEWEEK_FINAL_OR_OFF
        self.assertIs(decide_freshness(NOW - timedelta(hours=11), phase, NOW), FreshnessDecision.USE_CACHED)
        self.assertIs(decide_freshness(NOW - timedelta(hours=13), phase, NOW), FreshnessDecision.REFRESH)

    def test_unknown_phase_uses_an_hour(self):
        self.assertIs(decide_freshness(NOW - timedelta(minutes=60), None, NOW), FreshnessDecision.USE_CACHED)
        self.assertIs(decide_freshness(NOW - timedelta(minutes=61), None, NOW), FreshnessDecision.REFRESH)


class TestMapLeagues(unittest.TestCase):
    def test_classic_and_h2h_flattened(self):
        entry = make_entry(TEAM_ID, 21,
                           classic=[make_league(1, "Overall", league_type="s"),
                                    make_league(2, "Office", league_type="x")],
                           h2h=[make_league(3, "Cup Night", scoring="h", league_type="c")])

        leagues = map_leagues(entry)

        self.assertEqual([lg["external_league_id"] for lg in leagues], [1, 2, 3])
        self.assertEqual([lg["league_type"] for lg in leagues], ["standard", "invitation", "cup"])
        self.assertEqual([lg["scoring"] for lg in leagues], ["classic", "classic", "h2h"])
        self.assertEqual(leagues[2]["category"], "h2h-array")

    def test_unrecognised_league_type(self):
        entry = make_entry(TEAM_ID, 21, classic=[make_league(9, "Odd", league_type="q")])
        self.assertEqual(map_leagues(entry)[0]["league_type"], "unknown")


class SnapshotTestCase(unittest.IsolatedAsyncioTestCase):
    """Gameweek 21 deadline has passed and no match is near: 60 minute window."""

    fixtures = {21: [make_fixture(21, 1, 2, kickoff=NOW + timedelta(hours=20))]}

    def setUp(self):
        self.clock = FakeClock()
        self.entry = make_entry(TEAM_ID, 21, classic=[make_league(1, "Overall"), make_league(2, "Office")])
        self.fpl = FakeFPLClient(
            bootstrap={"events": [make_event(21, NOW - timedelta(hours=2))], "teams": [], "elements": []},
            fixtures=self.fixtures,
            entries={TEAM_ID: self.entry},
        )
        self.store = InMemoryStore({USER_ID: TEAM_ID})
        competition = CompetitionStateTracker(self.fpl, clock=self.clock)
        self.snapshots = SnapshotCache(self.fpl, self.store, competition, clock=self.clock)


class TestGetFresh(SnapshotTestCase):
    async def test_first_read_fetches_and_stores(self):
        fresh = await self.snapshots.get_fresh(USER_ID)

        self.assertEqual(fresh["team_id"], TEAM_ID)
        self.assertEqual(fresh["raw"]["current_event"], 21)
        self.assertEqual(self.store.teams[USER_ID]["entry_id"], TEAM_ID)
        self.assertEqual(len(self.store.leagues), 2)

    async def test_second_read_within_window_is_cached(self):
        await self.snapshots.get_fresh(USER_ID)
        self.clock.advance(minutes=30)
        fresh = await self.snapshots.get_fresh(USER_ID)

        self.assertEqual(self.fpl.calls["entry"], 1)
        self.assertEqual(fresh["last_synced_at"], NOW)

    async def test_stale_snapshot_is_refreshed(self):
        await self.snapshots.get_fresh(USER_ID)
        self.clock.advance(minutes=61)
        fresh = await self.snapshots.get_fresh(USER_ID)

        self.assertEqual(self.fpl.calls["entry"], 2)
        self.assertEqual(fresh["last_synced_at"], NOW + timedelta(minutes=61))

    async def test_unlinked_user_fails_without_upstream_call(self):
        self.store.user_team_ids.clear()
        with self.assertRaises(NoLinkedTeam):
            await self.snapshots.get_fresh(USER_ID)
        self.assertEqual(self.fpl.calls["entry"], 0)

    async def test_upstream_failure_leaves_snapshot_untouched(self):
        await self.snapshots.get_fresh(USER_ID)
        before_team = dict(self.store.teams[USER_ID])
        before_leagues = list(self.store.leagues)

        self.clock.advance(hours=2)
        self.fpl.failing.add("entry")
        with self.assertRaises(UpstreamUnavailable):
            await self.snapshots.get_fresh(USER_ID)

        self.assertEqual(self.store.teams[USER_ID], before_team)
        self.assertEqual(self.store.leagues, before_leagues)

    async def test_snapshot_without_current_event_uses_default_window(self):
        self.entry["current_event"] = None
        await self.snapshots.get_fresh(USER_ID)
        self.clock.advance(minutes=59)
        await self.snapshots.get_fresh(USER_ID)
        self.assertEqual(self.fpl.calls["entry"], 1)
        self.assertEqual(self.fpl.calls["bootstrap"], 0)


class TestMatchWindow(SnapshotTestCase):
    fixtures = {21: [make_fixture(21, 1, 2, kickoff=NOW)]}

    async def test_live_match_shortens_window(self):
        await self.snapshots.get_fresh(USER_ID)
        self.clock.advance(minutes=11)
        await self.snapshots.get_fresh(USER_ID)
        self.assertEqual(self.fpl.calls["entry"], 2)


class TestForceSync(SnapshotTestCase):
    async def test_force_sync_ignores_freshness(self):
        await self.snapshots.get_fresh(USER_ID)
        await self.snapshots.force_sync(USER_ID)
        self.assertEqual(self.fpl.calls["entry"], 2)

    async def test_leagues_are_replaced(self):
        await self.snapshots.force_sync(USER_ID)
        self.entry["leagues"] = {"classic": [make_league(5, "New League")], "h2h": []}
        await self.snapshots.force_sync(USER_ID)

        self.assertEqual([lg["external_league_id"] for lg in self.store.leagues], [5])
        self.assertTrue(all(lg["user_id"] == USER_ID for lg in self.store.leagues))

    async def test_unlinked_user(self):
        self.store.user_team_ids.clear()
        with self.assertRaises(NoLinkedTeam):
            await self.snapshots.force_sync(USER_ID)
        self.assertEqual(self.fpl.calls["entry"], 0)


class TestStoreFailure(SnapshotTestCase):
    async def test_failed_league_write_keeps_snapshot_stale(self):
        await self.snapshots.get_fresh(USER_ID)
        self.clock.advance(hours=2)

        insert_leagues = self.store.insert_team_leagues

        def failing_insert(leagues):
            raise RuntimeError("insert failed")

        self.store.insert_team_leagues = failing_insert
        with self.assertRaises(RuntimeError):
            await self.snapshots.get_fresh(USER_ID)
        self.assertEqual(self.store.teams[USER_ID]["last_synced_at"], NOW.isoformat())

        self.store.insert_team_leagues = insert_leagues
        fresh = await self.snapshots.get_fresh(USER_ID)

        self.assertEqual(self.fpl.calls["entry"], 3)
        self.assertEqual(fresh["last_synced_at"], NOW + timedelta(hours=2))
        self.assertEqual(len(self.store.leagues), 2)


class TestTeamOverview(SnapshotTestCase):
    async def test_overview_shape(self):
        overview = await self.snapshots.get_team_overview(USER_ID)

        self.assertEqual(overview["team_id"], TEAM_ID)
        self.assertEqual(overview["manager_name"], "Sam Rivers")
        self.assertEqual(overview["overall_points"], 1234)
        self.assertEqual(overview["current_event"], 21)
        self.assertEqual(len(overview["leagues"]), 2)
        self.assertEqual(overview["last_synced_at"], NOW.isoformat())


if __name__ == "__main__":
    unittest.main()
