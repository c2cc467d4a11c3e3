"""
Derived player metrics.

Everything here is recomputed from a player's raw bootstrap payload at read
time and never stored, so the numbers are exactly as fresh as the mirrored
player rows and fixtures they come from.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

ELEMENT_TYPE_POSITIONS = {1: "GK", 2: "DEF", 3: "MID", 4: "FWD"}

_UNAVAILABLE_STATUSES = {"i", "s", "n", "u"}  # injured, suspended, not available, unknown


class Availability(Enum):
    """Availability tier derived from FPL status and chance of playing."""
    AVAILABLE = "AVAILABLE"
    RISKY = "RISKY"
    UNAVAILABLE = "UNAVAILABLE"


def position_from_element_type(element_type: Any) -> Optional[str]:
    """Map FPL element_type (1=GK, 2=DEF, 3=MID, 4=FWD) to a position code."""
    try:
        return ELEMENT_TYPE_POSITIONS.get(int(element_type))
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_float(value: Any) -> Optional[float]:
    """Parse FPL numeric strings (e.g. points_per_game '5.4') to float, or None if missing/invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        s = str(value).strip()
        if not s:
            return None
        return float(s)
    except (TypeError, ValueError):
        return None


def availability_from_raw(raw: Optional[Mapping[str, Any]]) -> Availability:
    """
    Availability tier for a player.

    Order matters: a hard status wins, then the published chance of playing
    (next round, falling back to this round), then the doubtful flag.
    """
    if not raw:
        return Availability.AVAILABLE

    status = raw.get("status")
    if status in _UNAVAILABLE_STATUSES:
        return Availability.UNAVAILABLE

    chance = raw.get("chance_of_playing_next_round")
    if chance is None:
        chance = raw.get("chance_of_playing_this_round")
    if isinstance(chance, (int, float)) and not isinstance(chance, bool):
        if chance <= 25:
            return Availability.UNAVAILABLE
        if chance < 75:
            return Availability.RISKY

    if status == "d":
        return Availability.RISKY

    return Availability.AVAILABLE


def value_millions(now_cost: int) -> float:
    return now_cost / 10


def points_per_million(total_points: Optional[int], now_cost: int) -> Optional[float]:
    value = value_millions(now_cost)
    if total_points is None or value <= 0:
        return None
    return round(total_points / value, 2)


def points_per_ninety(
    total_points: Optional[int],
    minutes: Optional[int],
    min_minutes: int,
) -> Optional[float]:
    """Points per 90 minutes; None until the player has at least ``min_minutes``."""
    if total_points is None or minutes is None or minutes <= 0:
        return None
    if minutes < min_minutes:
        return None
    return round(total_points * 90 / minutes, 2)


def build_player_dto(
    player: Mapping[str, Any],
    min_minutes_per90: int,
    difficulty_sums: Mapping[int, Tuple[int, int]],
) -> Dict[str, Any]:
    """
    Flatten a stored player row (with its club) into the listing shape.

    Args:
        player: Player row with ``raw`` payload and nested ``club`` row
        min_minutes_per90: Sample-size threshold for points per 90
        difficulty_sums: club external id -> (next3, next5) difficulty sums
    """
    raw = player.get("raw") or {}
    club = player.get("club") or {}
    now_cost = _as_int(player.get("now_cost")) or 0
    total_points = _as_int(raw.get("total_points"))
    minutes = _as_int(raw.get("minutes"))
    next3, next5 = difficulty_sums.get(club.get("external_id"), (None, None))

    return {
        "id": player.get("id"),
        "external_id": player["external_id"],
        "web_name": player.get("web_name"),
        "full_name": player.get("full_name"),
        "position": player.get("position"),
        "now_cost": now_cost,
        "next3_difficulty_sum": next3,
        "next5_difficulty_sum": next5,
        "value_millions": value_millions(now_cost),
        "total_points": total_points,
        "points_per_game": _parse_float(raw.get("points_per_game")),
        "points_per_million": points_per_million(total_points, now_cost),
        "minutes": minutes,
        "points_per_ninety": points_per_ninety(total_points, minutes, min_minutes_per90),
        "availability": availability_from_raw(raw).value,
        "club": {
            "id": club.get("id"),
            "external_id": club.get("external_id"),
            "name": club.get("name"),
            "short_name": club.get("short_name"),
        },
    }
