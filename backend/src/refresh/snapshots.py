"""
Team snapshot caching.

Cache-aside over the ``fpl_teams`` table: the stored snapshot is served while
it is younger than the staleness window for the current gameweek phase, and
re-fetched from the FPL API otherwise.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from database.supabase_client import SupabaseClient
from fpl_api.client import FPLAPIClient
from refresh.competition import (
    CompetitionStateTracker,
    GameweekPhase,
    max_staleness_minutes,
    parse_timestamp,
)
from refresh.errors import NoLinkedTeam
from utils.ttl_cache import utcnow

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_LEAGUE_TYPES = {"s": "standard", "x": "invitation", "c": "cup"}


class FreshnessDecision(Enum):
    USE_CACHED = "use_cached"
    REFRESH = "refresh"


def decide_freshness(
    last_synced_at: Optional[datetime],
    phase: Optional[GameweekPhase],
    now: datetime,
) -> FreshnessDecision:
    """
    Decide whether a snapshot synced at ``last_synced_at`` can still be served.

    Args:
        last_synced_at: When the snapshot was fetched; None means never
        phase: Phase of the snapshot's current gameweek, None if unresolvable
        now: Current time
    """
    age_minutes = (now - (last_synced_at or _EPOCH)).total_seconds() / 60
    if age_minutes <= max_staleness_minutes(phase):
        return FreshnessDecision.USE_CACHED
    return FreshnessDecision.REFRESH


def map_leagues(entry: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Flatten the entry's classic and h2h league arrays."""
    leagues = entry.get("leagues") or {}

    def to_row(league: Mapping[str, Any], category: str) -> Dict[str, Any]:
        raw_type = league.get("league_type") or ""
        return {
            "external_league_id": league["id"],
            "name": league.get("name"),
            "short_name": league.get("short_name"),
            "scoring": "h2h" if league.get("scoring") == "h" else "classic",
            "league_type": _LEAGUE_TYPES.get(raw_type, "unknown"),
            "raw_league_type": raw_type,
            "closed": bool(league.get("closed")),
            "is_admin": bool(league.get("entry_can_admin")),
            "can_leave": bool(league.get("entry_can_leave")),
            "entry_rank": league.get("entry_rank"),
            "entry_last_rank": league.get("entry_last_rank"),
            "rank_count": league.get("rank_count"),
            "entry_percentile_rank": league.get("entry_percentile_rank"),
            "category": category,
        }

    return (
        [to_row(lg, "classic-array") for lg in leagues.get("classic") or []]
        + [to_row(lg, "h2h-array") for lg in leagues.get("h2h") or []]
    )


def map_entry_to_overview(team_id: str, entry: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a raw FPL entry payload to the team overview shape."""
    manager_name = f"{entry.get('player_first_name') or ''} {entry.get('player_last_name') or ''}".strip()
    return {
        "team_id": team_id,
        "team_name": entry.get("name"),
        "manager_name": manager_name,
        "region": entry.get("player_region_name"),
        "region_code": entry.get("player_region_iso_code_short"),
        "overall_points": entry.get("summary_overall_points"),
        "overall_rank": entry.get("summary_overall_rank"),
        "gw_points": entry.get("summary_event_points"),
        "gw_rank": entry.get("summary_event_rank"),
        "current_event": entry.get("current_event"),
        "leagues": map_leagues(entry),
    }


class SnapshotCache:
    """Serves per-user team snapshots, refreshing them from the FPL API when stale."""

    def __init__(
        self,
        fpl_client: FPLAPIClient,
        db_client: SupabaseClient,
        competition: CompetitionStateTracker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.fpl_client = fpl_client
        self.db_client = db_client
        self.competition = competition
        self._clock = clock

    def _team_id_or_raise(self, user_id: int) -> str:
        team_id = self.db_client.get_user_fpl_team_id(user_id)
        if not team_id:
            raise NoLinkedTeam(user_id)
        return team_id

    async def get_fresh(self, user_id: int) -> Dict[str, Any]:
        """
        Get the user's team summary, from the store when fresh enough.

        Returns:
            {"team_id", "raw", "last_synced_at"}

        Raises:
            NoLinkedTeam: No snapshot is usable and the user has no FPL team id
            UpstreamUnavailable: A refresh was needed and the FPL API failed
        """
        snapshot = self.db_client.get_team_snapshot(user_id)

        if snapshot:
            now = self._clock()
            last_synced_at = parse_timestamp(snapshot.get("last_synced_at"))
            current_event = (snapshot.get("raw") or {}).get("current_event")

            phase: Optional[GameweekPhase] = None
            if current_event:
                phase = await self.competition.classify_phase(current_event, now)

            if decide_freshness(last_synced_at, phase, now) is FreshnessDecision.USE_CACHED:
                logger.debug("Using cached team snapshot", extra={
                    "user_id": user_id,
                    "phase": phase.value if phase else None,
                    "last_synced_at": snapshot.get("last_synced_at")
                })
                return {
                    "team_id": snapshot["entry_id"],
                    "raw": snapshot.get("raw"),
                    "last_synced_at": last_synced_at,
                }

            logger.info("Team snapshot stale, refreshing", extra={
                "user_id": user_id,
                "phase": phase.value if phase else None,
                "last_synced_at": snapshot.get("last_synced_at")
            })

        return await self.force_sync(user_id)

    async def force_sync(self, user_id: int) -> Dict[str, Any]:
        """
        Fetch the user's team from the FPL API and replace the stored snapshot.

        The store is only written once the upstream response is complete, so a
        failed fetch leaves the previous snapshot as it was.
        """
        team_id = self._team_id_or_raise(user_id)
        raw = await self.fpl_client.get_entry(team_id)
        synced_at = self._clock()
        self._save_snapshot(user_id, team_id, raw, synced_at)

        logger.info("Team snapshot synced", extra={
            "user_id": user_id,
            "team_id": team_id,
            "current_event": raw.get("current_event")
        })

        return {"team_id": team_id, "raw": raw, "last_synced_at": synced_at}

    def _save_snapshot(
        self,
        user_id: int,
        team_id: str,
        raw: Dict[str, Any],
        synced_at: datetime,
    ) -> None:
        overview = map_entry_to_overview(team_id, raw)

        # Leagues have no identity across syncs: replace them wholesale.
        # The snapshot row goes last so a failed write keeps the old last_synced_at.
        self.db_client.delete_team_leagues(user_id)
        self.db_client.insert_team_leagues([
            {"user_id": user_id, **league} for league in overview["leagues"]
        ])

        self.db_client.upsert_team_snapshot({
            "user_id": user_id,
            "entry_id": team_id,
            "team_name": overview["team_name"],
            "manager_name": overview["manager_name"],
            "region": overview["region"],
            "region_code": overview["region_code"],
            "overall_points": overview["overall_points"],
            "overall_rank": overview["overall_rank"],
            "gw_points": overview["gw_points"],
            "gw_rank": overview["gw_rank"],
            "current_event": overview["current_event"],
            "last_synced_at": synced_at.isoformat(),
            "raw": raw,
        })

    async def get_team_overview(self, user_id: int) -> Dict[str, Any]:
        """Team overview (summary + leagues) built from the freshest allowed snapshot."""
        fresh = await self.get_fresh(user_id)
        overview = map_entry_to_overview(fresh["team_id"], fresh["raw"] or {})
        last_synced_at = fresh["last_synced_at"]
        overview["last_synced_at"] = last_synced_at.isoformat() if last_synced_at else None
        return overview
