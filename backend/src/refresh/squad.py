"""
Squad projection: a team's current picks joined onto the player catalog.
"""

import logging
from typing import Any, Dict, List

from fpl_api.client import FPLAPIClient
from refresh.errors import CurrentGameweekUnknown
from refresh.players import PlayerCatalog
from refresh.snapshots import SnapshotCache

logger = logging.getLogger(__name__)

STARTING_SLOTS = 11


class SquadProjector:
    """Builds the current gameweek squad (XI + bench) with live points."""

    def __init__(
        self,
        fpl_client: FPLAPIClient,
        snapshots: SnapshotCache,
        catalog: PlayerCatalog,
    ):
        self.fpl_client = fpl_client
        self.snapshots = snapshots
        self.catalog = catalog

    async def _live_points(self, gameweek: int) -> Dict[int, int]:
        data = await self.fpl_client.get_event_live(gameweek)
        return {
            el["id"]: (el.get("stats") or {}).get("total_points", 0)
            for el in data.get("elements") or []
        }

    async def get_current_squad(self, user_id: int) -> Dict[str, Any]:
        """
        Current squad for a user.

        Returns:
            {"event", "team_id", "value", "bank", "starting", "bench"}; value and
            bank are in tenths of a million, event is the picks payload's own
            gameweek.

        Raises:
            NoLinkedTeam, UpstreamUnavailable, CurrentGameweekUnknown
        """
        fresh = await self.snapshots.get_fresh(user_id)
        team_id = fresh["team_id"]
        current_event = (fresh["raw"] or {}).get("current_event")
        if not current_event:
            raise CurrentGameweekUnknown(team_id)

        picks_raw = await self.fpl_client.get_entry_picks(team_id, current_event)
        live_points = await self._live_points(current_event)

        history = picks_raw.get("entry_history") or {}
        picks = picks_raw.get("picks") or []
        players = await self.catalog.get_players_by_external_ids([p["element"] for p in picks])

        starting: List[Dict[str, Any]] = []
        bench: List[Dict[str, Any]] = []
        skipped = []

        for pick in picks:
            player = players.get(pick["element"])
            if player is None:
                # Catalog can lag upstream (new signings) until the next bulk sync
                skipped.append(pick["element"])
                continue

            is_starting = pick["position"] <= STARTING_SLOTS
            entry = {
                **player,
                "gw_points": live_points.get(pick["element"]),
                "pick": {
                    "position": pick["position"],
                    "multiplier": pick.get("multiplier"),
                    "is_captain": bool(pick.get("is_captain")),
                    "is_vice_captain": bool(pick.get("is_vice_captain")),
                    "is_starting": is_starting,
                },
            }
            (starting if is_starting else bench).append(entry)

        if skipped:
            logger.warning("Picks reference players missing from catalog", extra={
                "team_id": team_id,
                "gameweek": current_event,
                "player_ids": skipped
            })

        return {
            "event": history.get("event", current_event),
            "team_id": team_id,
            "value": history.get("value"),
            "bank": history.get("bank"),
            "starting": starting,
            "bench": bench,
        }
