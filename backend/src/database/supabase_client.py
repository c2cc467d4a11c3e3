"""
Supabase client for database operations.

Thin table-access layer for the mirrored FPL data: per-user team snapshots and
their leagues, plus the club/player catalog. Selects only the columns callers
use.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from supabase import create_client, Client

from config import Config

logger = logging.getLogger(__name__)

PLAYER_COLUMNS = (
    "id, external_id, club_id, web_name, full_name, position, now_cost, raw, "
    "fpl_clubs(id, external_id, name, short_name)"
)


class SupabaseClient:
    """Client for interacting with Supabase database."""

    def __init__(self, config: Config):
        self.config = config
        self.client: Optional[Client] = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client."""
        if not self.config.supabase_url or not self.config.supabase_key:
            raise ValueError("Supabase URL and key are required")

        # Service key bypasses RLS for the sync jobs; anon key is enough for reads
        key = self.config.supabase_service_key or self.config.supabase_key

        self.client = create_client(self.config.supabase_url, key)

        logger.info("Initialized Supabase client", extra={
            "url": self.config.supabase_url,
            "using_service_key": bool(self.config.supabase_service_key)
        })

    # Users (identity store)

    def get_user_fpl_team_id(self, user_id: int) -> Optional[str]:
        """
        Get the FPL team id linked to a user.

        Returns:
            The external team id, or None if the user is unknown or not linked
        """
        result = self.client.table("users").select("fpl_team_id").eq(
            "id", user_id
        ).maybe_single().execute()
        row = result.data if result is not None else None
        if not row or not row.get("fpl_team_id"):
            return None
        return str(row["fpl_team_id"])

    # Team snapshots

    def get_team_snapshot(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get the stored team snapshot for a user, or None."""
        result = self.client.table("fpl_teams").select("*").eq(
            "user_id", user_id
        ).maybe_single().execute()
        return result.data if result is not None else None

    def upsert_team_snapshot(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """
        Upsert a user's team snapshot (one row per user).

        Args:
            snapshot: Full snapshot row including ``user_id``
        """
        result = self.client.table("fpl_teams").upsert(
            snapshot,
            on_conflict="user_id"
        ).execute()
        return result.data[0] if result.data else snapshot

    def delete_team_leagues(self, user_id: int):
        """Delete every league row belonging to a user's snapshot."""
        self.client.table("fpl_leagues").delete().eq("user_id", user_id).execute()

    def insert_team_leagues(self, leagues: List[Dict[str, Any]]):
        """Bulk-insert league rows for a snapshot."""
        if not leagues:
            return []
        result = self.client.table("fpl_leagues").insert(leagues).execute()
        return result.data

    # Clubs

    def upsert_clubs(self, clubs: List[Dict[str, Any]]):
        """
        Upsert clubs by external id.

        Args:
            clubs: Club rows with external_id, name, short_name
        """
        if not clubs:
            return []
        result = self.client.table("fpl_clubs").upsert(
            clubs,
            on_conflict="external_id"
        ).execute()
        return result.data

    def get_clubs(self, external_ids: Optional[Iterable[int]] = None) -> List[Dict[str, Any]]:
        """Get clubs, optionally restricted to a set of external ids."""
        query = self.client.table("fpl_clubs").select("id, external_id, name, short_name")
        if external_ids is not None:
            query = query.in_("external_id", list(external_ids))
        result = query.execute()
        return result.data or []

    # Players

    def upsert_players(self, players: List[Dict[str, Any]]):
        """
        Upsert players by external id.

        Args:
            players: Player rows with external_id, club_id, web_name, full_name,
                position, now_cost, raw
        """
        if not players:
            return []
        result = self.client.table("fpl_players").upsert(
            players,
            on_conflict="external_id"
        ).execute()
        return result.data

    def get_players(self, external_ids: Optional[Iterable[int]] = None) -> List[Dict[str, Any]]:
        """
        Get players with their club embedded under ``club``.

        Args:
            external_ids: Optional FPL element ids to restrict to
        """
        query = self.client.table("fpl_players").select(PLAYER_COLUMNS)
        if external_ids is not None:
            ids = list(external_ids)
            if not ids:
                return []
            query = query.in_("external_id", ids)
        rows = query.execute().data or []
        players = []
        for row in rows:
            row = dict(row)
            row["club"] = row.pop("fpl_clubs", None) or {}
            players.append(row)
        return players
