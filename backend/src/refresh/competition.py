"""
Competition state tracking.

Caches the season schedule (gameweeks and per-gameweek fixtures) and derives
the gameweek phase that drives how stale cached team data may get.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from fpl_api.client import FPLAPIClient
from utils.ttl_cache import TTLCache, utcnow

logger = logging.getLogger(__name__)

SCHEDULE_TTL = timedelta(hours=12)

# Live window around a kickoff: 30 min before through 150 min after
LIVE_WINDOW_BEFORE = timedelta(minutes=30)
LIVE_WINDOW_AFTER = timedelta(minutes=150)

# How many gameweeks ahead fixture difficulty is summed over
DIFFICULTY_LOOKAHEAD_GAMEWEEKS = 5

MINUTES_PER_PLAYED_GAMEWEEK = 60


class GameweekPhase(Enum):
    """Where a gameweek is in its lifecycle."""
    PRE_DEADLINE = "pre_deadline"  # Squads still open
    DURING_MATCH_WINDOW = "during_match_window"  # A fixture is live or about to kick off
    BETWEEN_MATCHES_IN_GAMEWEEK = "between_matches"  # Deadline passed, no match near
    GAMEWEEK_FINISHED_NOT_FINAL = "finished_not_final"  # All played, bonus/data not checked
    GAMEWEEK_FINAL_OR_OFF = "final_or_off"  # Results final, or gameweek unknown


MAX_STALENESS_MINUTES = {
    GameweekPhase.DURING_MATCH_WINDOW: 10,
    GameweekPhase.PRE_DEADLINE: 60,
    GameweekPhase.BETWEEN_MATCHES_IN_GAMEWEEK: 60,
    GameweekPhase.GAMEWEEK_FINISHED_NOT_FINAL: 60,
    GameweekPhase.GAMEWEEK_FINAL_OR_OFF: 12 * 60,
}


def max_staleness_minutes(phase: Optional[GameweekPhase]) -> int:
    """Maximum age (minutes) of cached team data for a phase; 60 when the phase is unknown."""
    if phase is None:
        return 60
    return MAX_STALENESS_MINUTES.get(phase, MAX_STALENESS_MINUTES[GameweekPhase.GAMEWEEK_FINAL_OR_OFF])


@dataclass(frozen=True)
class GameweekMeta:
    id: int
    deadline: Optional[datetime]
    finished: bool
    results_finalized: bool


@dataclass(frozen=True)
class Fixture:
    event: Optional[int]
    kickoff: Optional[datetime]
    finished: bool
    home_club: int
    away_club: int
    home_difficulty: int
    away_difficulty: int


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an FPL ISO timestamp ('2024-08-16T17:30:00Z') to an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def gameweek_from_event(event: Mapping[str, Any]) -> GameweekMeta:
    return GameweekMeta(
        id=int(event["id"]),
        deadline=parse_timestamp(event.get("deadline_time")),
        finished=bool(event.get("finished")),
        results_finalized=bool(event.get("data_checked")),
    )


def fixture_from_raw(raw: Mapping[str, Any]) -> Fixture:
    return Fixture(
        event=raw.get("event"),
        kickoff=parse_timestamp(raw.get("kickoff_time")),
        finished=bool(raw.get("finished")),
        home_club=raw["team_h"],
        away_club=raw["team_a"],
        home_difficulty=int(raw.get("team_h_difficulty") or 0),
        away_difficulty=int(raw.get("team_a_difficulty") or 0),
    )


def _upcoming_gameweek_ids(gameweeks: Sequence[GameweekMeta], count: int) -> List[int]:
    """Ids from the first unfinished gameweek (or the last one if all are finished)."""
    if not gameweeks:
        return []
    first_upcoming = next((gw for gw in gameweeks if not gw.finished), gameweeks[-1])
    return [gw.id for gw in gameweeks if gw.id >= first_upcoming.id][:count]


class CompetitionStateTracker:
    """
    Owns the schedule caches and answers "what phase is this gameweek in".

    Built once per process and shared by reference, so every dependent sees the
    same 12-hour schedule cache.
    """

    def __init__(
        self,
        fpl_client: FPLAPIClient,
        ttl: timedelta = SCHEDULE_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.fpl_client = fpl_client
        self._clock = clock
        self._gameweeks_cache = TTLCache(ttl, name="gameweeks", clock=clock)
        self._fixtures_cache = TTLCache(ttl, name="fixtures", clock=clock)

    async def _load_gameweeks(self) -> Tuple[GameweekMeta, ...]:
        bootstrap = await self.fpl_client.get_bootstrap_static()
        gameweeks = sorted(
            (gameweek_from_event(e) for e in bootstrap.get("events") or []),
            key=lambda gw: gw.id,
        )
        logger.info("Gameweek schedule refreshed", extra={"gameweeks_count": len(gameweeks)})
        return tuple(gameweeks)

    async def get_gameweeks(self) -> Tuple[GameweekMeta, ...]:
        """All gameweeks ordered by id (cached)."""
        return await self._gameweeks_cache.get_or_load("events", self._load_gameweeks)

    async def get_gameweek(self, gameweek_id: int) -> Optional[GameweekMeta]:
        gameweeks = await self.get_gameweeks()
        return next((gw for gw in gameweeks if gw.id == gameweek_id), None)

    async def get_fixtures(self, gameweek_id: int) -> Tuple[Fixture, ...]:
        """Fixtures for one gameweek (cached per gameweek id)."""

        async def load() -> Tuple[Fixture, ...]:
            raw = await self.fpl_client.get_fixtures(gameweek_id)
            return tuple(fixture_from_raw(f) for f in raw)

        return await self._fixtures_cache.get_or_load(gameweek_id, load)

    async def classify_phase(
        self,
        gameweek_id: int,
        now: Optional[datetime] = None,
    ) -> GameweekPhase:
        """
        Classify a gameweek's phase at ``now``.

        Unknown gameweeks are treated as final/off, the most relaxed phase.
        """
        now = now or self._clock()
        gameweek = await self.get_gameweek(gameweek_id)
        if gameweek is None:
            return GameweekPhase.GAMEWEEK_FINAL_OR_OFF

        if gameweek.deadline is not None and now < gameweek.deadline:
            return GameweekPhase.PRE_DEADLINE

        if gameweek.finished and gameweek.results_finalized:
            return GameweekPhase.GAMEWEEK_FINAL_OR_OFF

        if gameweek.finished:
            return GameweekPhase.GAMEWEEK_FINISHED_NOT_FINAL

        fixtures = await self.get_fixtures(gameweek_id)
        if any(self._in_live_window(f, now) for f in fixtures):
            return GameweekPhase.DURING_MATCH_WINDOW

        return GameweekPhase.BETWEEN_MATCHES_IN_GAMEWEEK

    @staticmethod
    def _in_live_window(fixture: Fixture, now: datetime) -> bool:
        if fixture.kickoff is None or fixture.finished:
            return False
        return fixture.kickoff - LIVE_WINDOW_BEFORE <= now <= fixture.kickoff + LIVE_WINDOW_AFTER

    @staticmethod
    def max_staleness(phase: GameweekPhase) -> int:
        """Maximum age (minutes) of cached team data for a phase."""
        return max_staleness_minutes(phase)

    async def min_minutes_for_per90(self) -> int:
        """Minutes a player needs before a per-90 rate is trusted: 60 per played gameweek."""
        gameweeks = await self.get_gameweeks()
        if not gameweeks:
            return MINUTES_PER_PLAYED_GAMEWEEK
        played = sum(1 for gw in gameweeks if gw.finished or gw.results_finalized)
        return max(1, played) * MINUTES_PER_PLAYED_GAMEWEEK

    async def _upcoming_fixtures(self, count: int) -> Tuple[List[int], List[Fixture]]:
        gameweeks = await self.get_gameweeks()
        event_ids = _upcoming_gameweek_ids(gameweeks, count)
        fixtures: List[Fixture] = []
        for event_id in event_ids:
            for fixture in await self.get_fixtures(event_id):
                if not fixture.event or fixture.finished:
                    continue
                fixtures.append(fixture)
        return event_ids, fixtures

    async def get_upcoming_difficulty_sums(self) -> Dict[int, Tuple[int, int]]:
        """
        Sum of fixture difficulty per club over its next 3 and next 5 fixtures.

        Returns:
            club external id -> (next3, next5). Clubs with no upcoming fixture in
            the lookahead window are absent.
        """
        _, fixtures = await self._upcoming_fixtures(DIFFICULTY_LOOKAHEAD_GAMEWEEKS)

        by_club: Dict[int, List[Tuple[int, int]]] = {}
        for fx in fixtures:
            by_club.setdefault(fx.home_club, []).append((fx.event, fx.home_difficulty))
            by_club.setdefault(fx.away_club, []).append((fx.event, fx.away_difficulty))

        sums: Dict[int, Tuple[int, int]] = {}
        for club_id, entries in by_club.items():
            entries.sort(key=lambda e: e[0])
            difficulties = [d for _, d in entries]
            sums[club_id] = (sum(difficulties[:3]), sum(difficulties[:5]))
        return sums

    async def get_fixture_ticker(
        self,
        clubs: Iterable[Mapping[str, Any]],
        num_events: int = 5,
    ) -> Dict[str, Any]:
        """
        Upcoming fixtures per club for the next ``num_events`` gameweeks (1-10).

        Args:
            clubs: Club rows with ``external_id`` and ``short_name``

        Returns:
            {"events": [gameweek ids], "rows": [{club_external_id, club_short_name, fixtures}]}
        """
        num_events = max(1, min(num_events, 10))
        event_ids, fixtures = await self._upcoming_fixtures(num_events)
        if not event_ids:
            return {"events": [], "rows": []}

        club_by_id = {c["external_id"]: c for c in clubs}
        rows: Dict[int, Dict[str, Any]] = {
            club_id: {
                "club_external_id": club_id,
                "club_short_name": club.get("short_name"),
                "fixtures": [],
            }
            for club_id, club in club_by_id.items()
        }

        for fx in fixtures:
            for club_id, opponent_id, is_home, difficulty in (
                (fx.home_club, fx.away_club, True, fx.home_difficulty),
                (fx.away_club, fx.home_club, False, fx.away_difficulty),
            ):
                row = rows.get(club_id)
                opponent = club_by_id.get(opponent_id)
                if row is None or opponent is None:
                    continue
                row["fixtures"].append({
                    "event": fx.event,
                    "kickoff_time": fx.kickoff.isoformat() if fx.kickoff else None,
                    "is_home": is_home,
                    "opponent_external_id": opponent_id,
                    "opponent_short_name": opponent.get("short_name"),
                    "difficulty": difficulty,
                })

        for row in rows.values():
            # Fixtures without a kickoff sort last within their gameweek
            row["fixtures"].sort(key=lambda f: (f["event"], f["kickoff_time"] is None, f["kickoff_time"] or ""))

        return {
            "events": event_ids,
            "rows": [r for r in rows.values() if r["fixtures"]],
        }
