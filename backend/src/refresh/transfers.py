"""
Transfer suggestions.

Greedy one-for-one search: for each starter, walk the catalog in points-per-90
order and keep the first few affordable, available, same-position upgrades.
Not a squad-wide optimum.
"""

import logging
import math
from typing import Any, Dict, List

from refresh.competition import CompetitionStateTracker
from refresh.players import PlayerCatalog, PlayerListFilters, SortDirection, SortKey
from refresh.squad import SquadProjector
from utils.metrics import Availability, points_per_ninety

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 20
MAX_PER_PLAYER = 3
MIN_MINUTES_TO_SELL = 180


def _suggestion_rank(suggestion: Dict[str, Any]):
    delta = suggestion["delta"]
    next3 = suggestion["to"].get("next3_difficulty_sum")
    return (
        -delta["points_per_ninety_diff"],
        next3 if next3 is not None else math.inf,
        delta["cost"],
    )


class TransferAdvisor:
    """Ranks buy/sell suggestions for a user's starting XI."""

    def __init__(
        self,
        squad_projector: SquadProjector,
        catalog: PlayerCatalog,
        competition: CompetitionStateTracker,
    ):
        self.squad_projector = squad_projector
        self.catalog = catalog
        self.competition = competition

    async def suggest(self, user_id: int) -> List[Dict[str, Any]]:
        """
        Up to 20 ranked suggestions ``{"from", "to", "delta"}``.

        ``delta`` holds cost (tenths), bank_remaining (tenths),
        points_per_ninety_diff and points_per_million_diff.
        """
        squad = await self.squad_projector.get_current_squad(user_id)
        min_minutes = await self.competition.min_minutes_for_per90()
        candidates = await self.catalog.list_all(PlayerListFilters(
            min_minutes=min_minutes,
            sort_key=SortKey.POINTS_PER_NINETY,
            sort_direction=SortDirection.DESC,
        ))

        owned = {p["external_id"] for p in squad["starting"] + squad["bench"]}
        bank = squad["bank"] or 0
        suggestions: List[Dict[str, Any]] = []

        for out in squad["starting"]:
            if out["minutes"] is None or out["minutes"] < MIN_MINUTES_TO_SELL:
                continue
            # Sellers only need the 180 minute floor, not the catalog sample threshold
            out_per90 = points_per_ninety(out["total_points"], out["minutes"], MIN_MINUTES_TO_SELL)
            if out_per90 is None:
                continue

            budget = out["now_cost"] + bank
            accepted = 0

            for candidate in candidates:
                if accepted >= MAX_PER_PLAYER:
                    break
                if candidate["position"] != out["position"]:
                    continue
                if candidate["external_id"] in owned:
                    continue
                if candidate["now_cost"] > budget:
                    continue
                if candidate["points_per_ninety"] is None:
                    continue
                if candidate["availability"] != Availability.AVAILABLE.value:
                    continue

                bank_remaining = bank + out["now_cost"] - candidate["now_cost"]
                if bank_remaining < 0:
                    continue

                per90_diff = candidate["points_per_ninety"] - out_per90
                if per90_diff <= 0:
                    continue

                ppm_diff = None
                if candidate["points_per_million"] is not None and out["points_per_million"] is not None:
                    ppm_diff = round(candidate["points_per_million"] - out["points_per_million"], 2)

                suggestions.append({
                    "from": {**out, "points_per_ninety": out_per90},
                    "to": candidate,
                    "delta": {
                        "cost": candidate["now_cost"] - out["now_cost"],
                        "bank_remaining": bank_remaining,
                        "points_per_ninety_diff": round(per90_diff, 2),
                        "points_per_million_diff": ppm_diff,
                    },
                })
                accepted += 1

        suggestions.sort(key=_suggestion_rank)

        logger.info("Transfer suggestions computed", extra={
            "user_id": user_id,
            "gameweek": squad["event"],
            "candidates": len(candidates),
            "suggestions": len(suggestions)
        })

        return suggestions[:MAX_SUGGESTIONS]
