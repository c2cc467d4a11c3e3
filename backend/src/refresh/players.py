"""
Player catalog.

Mirrors clubs and players from bootstrap-static into the store and serves
filtered/sorted player listings with derived metrics attached.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from database.supabase_client import SupabaseClient
from fpl_api.client import FPLAPIClient
from refresh.competition import CompetitionStateTracker
from refresh.errors import DataIntegrityError
from utils.metrics import build_player_dto, position_from_element_type

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class SortKey(Enum):
    PRICE = "price"
    TOTAL_POINTS = "total_points"
    POINTS_PER_GAME = "points_per_game"
    MINUTES = "minutes"
    POINTS_PER_MILLION = "points_per_million"
    POINTS_PER_NINETY = "points_per_ninety"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


# DTO field each sort key orders by
_SORT_FIELDS = {
    SortKey.PRICE: "now_cost",
    SortKey.TOTAL_POINTS: "total_points",
    SortKey.POINTS_PER_GAME: "points_per_game",
    SortKey.MINUTES: "minutes",
    SortKey.POINTS_PER_MILLION: "points_per_million",
    SortKey.POINTS_PER_NINETY: "points_per_ninety",
}


@dataclass
class PlayerListFilters:
    club_external_id: Optional[int] = None
    position: Optional[str] = None
    search: Optional[str] = None
    min_minutes: Optional[int] = None
    offset: int = 0
    limit: int = 50
    sort_key: SortKey = SortKey.PRICE
    sort_direction: SortDirection = SortDirection.DESC


def _full_name(element: Dict[str, Any]) -> Optional[str]:
    name = re.sub(r"\s+", " ", f"{element.get('first_name') or ''} {element.get('second_name') or ''}").strip()
    return name or None


def _matches(player: Dict[str, Any], filters: PlayerListFilters) -> bool:
    if filters.club_external_id is not None and player["club"]["external_id"] != filters.club_external_id:
        return False
    if filters.position and player["position"] != filters.position:
        return False
    if filters.search:
        needle = filters.search.lower()
        names = (player.get("web_name") or "", player.get("full_name") or "")
        if not any(needle in n.lower() for n in names):
            return False
    if filters.min_minutes is not None and (player["minutes"] or 0) < filters.min_minutes:
        return False
    return True


class PlayerCatalog:
    """Locally mirrored clubs/players plus derived metrics."""

    def __init__(
        self,
        fpl_client: FPLAPIClient,
        db_client: SupabaseClient,
        competition: CompetitionStateTracker,
    ):
        self.fpl_client = fpl_client
        self.db_client = db_client
        self.competition = competition

    async def bulk_sync(self) -> Dict[str, int]:
        """
        Upsert all clubs, then all players, from bootstrap-static.

        Every player row is built (and its club resolved) before any player is
        written, so a payload referencing a missing club commits no players.

        Raises:
            DataIntegrityError: A player references a club not in the payload
            UpstreamUnavailable: bootstrap-static could not be fetched
        """
        bootstrap = await self.fpl_client.get_bootstrap_static()
        teams = bootstrap.get("teams") or []
        elements = bootstrap.get("elements") or []

        clubs = [
            {"external_id": t["id"], "name": t.get("name"), "short_name": t.get("short_name")}
            for t in teams
        ]
        self.db_client.upsert_clubs(clubs)

        stored_clubs = self.db_client.get_clubs([c["external_id"] for c in clubs])
        club_by_external_id = {c["external_id"]: c for c in stored_clubs}

        players: List[Dict[str, Any]] = []
        skipped = 0
        for element in elements:
            club = club_by_external_id.get(element.get("team"))
            if club is None:
                logger.error("Player references unknown club", extra={
                    "player_id": element.get("id"),
                    "team_id": element.get("team")
                })
                raise DataIntegrityError(
                    f"Missing club for team id {element.get('team')} "
                    f"while syncing player {element.get('id')}"
                )

            position = position_from_element_type(element.get("element_type"))
            if position is None:
                # e.g. assistant-manager elements: not squad players
                logger.warning("Skipping element with unknown element_type", extra={
                    "player_id": element.get("id"),
                    "element_type": element.get("element_type")
                })
                skipped += 1
                continue

            players.append({
                "external_id": element["id"],
                "club_id": club["id"],
                "web_name": element.get("web_name"),
                "full_name": _full_name(element),
                "position": position,
                "now_cost": element.get("now_cost"),
                "raw": element,
            })

        self.db_client.upsert_players(players)

        logger.info("Catalog bulk sync complete", extra={
            "clubs_synced": len(clubs),
            "players_synced": len(players),
            "players_skipped": skipped
        })

        return {"clubs_synced": len(clubs), "players_synced": len(players)}

    async def _to_dtos(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        min_minutes = await self.competition.min_minutes_for_per90()
        difficulty = await self.competition.get_upcoming_difficulty_sums()
        return [build_player_dto(row, min_minutes, difficulty) for row in rows]

    async def get_players_by_external_ids(self, external_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        """Player DTOs keyed by FPL element id; unknown ids are absent."""
        rows = self.db_client.get_players(external_ids)
        return {dto["external_id"]: dto for dto in await self._to_dtos(rows)}

    async def list_all(self, filters: Optional[PlayerListFilters] = None) -> List[Dict[str, Any]]:
        """Filtered and ordered players, without pagination."""
        filters = filters or PlayerListFilters()
        players = [p for p in await self._to_dtos(self.db_client.get_players()) if _matches(p, filters)]

        field = _SORT_FIELDS[filters.sort_key]
        # Two stable passes: name ascending always breaks ties, whatever the primary direction
        players.sort(key=lambda p: p.get("web_name") or "")
        players.sort(
            key=lambda p: p.get(field) or 0,
            reverse=filters.sort_direction is SortDirection.DESC,
        )
        return players

    async def list(self, filters: Optional[PlayerListFilters] = None) -> List[Dict[str, Any]]:
        """One page of filtered and ordered players (limit clamped to 1-200)."""
        filters = filters or PlayerListFilters()
        offset = max(filters.offset, 0)
        limit = min(max(filters.limit, 1), MAX_PAGE_SIZE)
        players = await self.list_all(filters)
        return players[offset:offset + limit]

    async def get_fixture_ticker(self, num_events: int = 5) -> Dict[str, Any]:
        """Upcoming fixtures per club, using the mirrored club names."""
        return await self.competition.get_fixture_ticker(self.db_client.get_clubs(), num_events)
