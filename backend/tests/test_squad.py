import unittest
from datetime import timedelta

from refresh.competition import CompetitionStateTracker
from refresh.errors import CurrentGameweekUnknown, NoLinkedTeam
from refresh.players import PlayerCatalog
from refresh.snapshots import SnapshotCache
from refresh.squad import SquadProjector

from fakes import (
    NOW,
    FakeClock,
    FakeFPLClient,
    InMemoryStore,
    make_element,
    make_entry,
    make_event,
    make_team,
)

USER_ID = 7
TEAM_ID = "555"


def _pick(element, position, multiplier=1, is_captain=False, is_vice_captain=False):
    return {
        "element": element,
        "position": position,
        "multiplier": multiplier,
        "is_captain": is_captain,
        "is_vice_captain": is_vice_captain,
    }


class TestCurrentSquad(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        clock = FakeClock()
        self.fpl = FakeFPLClient(
            bootstrap={
                "events": [
                    make_event(20, NOW - timedelta(days=7), finished=True, data_checked=True),
                    make_event(21, NOW - timedelta(days=1)),
                ],
                "teams": [make_team(1, "Arsenal", "ARS"), make_team(2, "Aston Villa", "AVL")],
                "elements": [
                    make_element(10, 1, 3, 100, 120, 900, web_name="Saka"),
                    make_element(11, 2, 4, 90, 90, 900, web_name="Watkins"),
                    make_element(13, 1, 3, 65, 60, 600, web_name="Rice"),
                ],
            },
            entries={TEAM_ID: make_entry(TEAM_ID, 21)},
            picks={TEAM_ID: {
                "entry_history": {"event": 22, "bank": 5, "value": 1000},
                "picks": [
                    _pick(10, 1, multiplier=2, is_captain=True),
                    _pick(11, 2, is_vice_captain=True),
                    _pick(99, 3),
                    _pick(13, 12, multiplier=0),
                ],
            }},
            live={21: {"elements": [
                {"id": 10, "stats": {"total_points": 8}},
                {"id": 11, "stats": {"total_points": 2}},
            ]}},
        )
        self.store = InMemoryStore({USER_ID: TEAM_ID})
        competition = CompetitionStateTracker(self.fpl, clock=clock)
        self.catalog = PlayerCatalog(self.fpl, self.store, competition)
        self.snapshots = SnapshotCache(self.fpl, self.store, competition, clock=clock)
        self.projector = SquadProjector(self.fpl, self.snapshots, self.catalog)
        await self.catalog.bulk_sync()

    async def test_partitions_starting_and_bench(self):
        squad = await self.projector.get_current_squad(USER_ID)

        self.assertEqual([p["web_name"] for p in squad["starting"]], ["Saka", "Watkins"])
        self.assertEqual([p["web_name"] for p in squad["bench"]], ["Rice"])
        self.assertTrue(all(p["pick"]["is_starting"] for p in squad["starting"]))
        self.assertFalse(squad["bench"][0]["pick"]["is_starting"])

    async def test_unknown_player_skipped(self):
        squad = await self.projector.get_current_squad(USER_ID)
        ids = [p["external_id"] for p in squad["starting"] + squad["bench"]]
        self.assertNotIn(99, ids)
        self.assertEqual(len(ids), 3)

    async def test_picks_metadata_and_live_points(self):
        squad = await self.projector.get_current_squad(USER_ID)
        captain = squad["starting"][0]

        self.assertTrue(captain["pick"]["is_captain"])
        self.assertEqual(captain["pick"]["multiplier"], 2)
        self.assertEqual(captain["gw_points"], 8)
        self.assertIsNone(squad["bench"][0]["gw_points"])
        self.assertEqual((squad["bank"], squad["value"]), (5, 1000))

    async def test_event_comes_from_picks_payload(self):
        squad = await self.projector.get_current_squad(USER_ID)

        self.assertEqual(squad["event"], 22)
        self.assertEqual(self.fpl.picks_requests, [(TEAM_ID, 21)])

    async def test_no_current_gameweek(self):
        self.fpl.entries[TEAM_ID]["current_event"] = None
        with self.assertRaises(CurrentGameweekUnknown):
            await self.projector.get_current_squad(USER_ID)
        self.assertEqual(self.fpl.calls["picks"], 0)

    async def test_unlinked_user(self):
        self.store.user_team_ids.clear()
        with self.assertRaises(NoLinkedTeam):
            await self.projector.get_current_squad(USER_ID)


if __name__ == "__main__":
    unittest.main()
