#!/usr/bin/env python3
"""
Print a user's current squad and ranked transfer suggestions.

Usage (from backend directory):
    python3 scripts/suggest_transfers.py --user 42
    python3 scripts/suggest_transfers.py --user 42 --squad-only
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import Config
from fpl_api.client import UpstreamUnavailable
from refresh.errors import SyncError
from refresh.orchestrator import SyncOrchestrator
from utils.logger import setup_logging


def _fmt_player(p) -> str:
    per90 = p["points_per_ninety"]
    per90_text = f"{per90:.2f}" if per90 is not None else "-"
    return f"{p['web_name']:<18} {p['position']:<4} £{p['value_millions']:.1f}m  p90 {per90_text}"


async def suggest_transfers(user_id: int, squad_only: bool) -> int:
    setup_logging()
    orchestrator = SyncOrchestrator(Config())
    await orchestrator.initialize()

    try:
        squad = await orchestrator.squad.get_current_squad(user_id)
        print(f"GW{squad['event']}  team {squad['team_id']}  "
              f"value £{(squad['value'] or 0) / 10:.1f}m  bank £{(squad['bank'] or 0) / 10:.1f}m\n")
        for label, players in (("Starting XI", squad["starting"]), ("Bench", squad["bench"])):
            print(label)
            for p in players:
                captain = " (C)" if p["pick"]["is_captain"] else " (VC)" if p["pick"]["is_vice_captain"] else ""
                print(f"  {_fmt_player(p)}  GW {p['gw_points']}{captain}")
            print()

        if squad_only:
            return 0

        suggestions = await orchestrator.transfers.suggest(user_id)
        print(f"Suggestions ({len(suggestions)})")
        for s in suggestions:
            d = s["delta"]
            print(f"  OUT {_fmt_player(s['from'])}")
            print(f"  IN  {_fmt_player(s['to'])}")
            print(f"      p90 +{d['points_per_ninety_diff']:.2f}  cost {d['cost']:+d}  "
                  f"bank after £{d['bank_remaining'] / 10:.1f}m\n")
    except (SyncError, UpstreamUnavailable) as e:
        print(f"Could not build suggestions: {e}")
        return 1
    finally:
        await orchestrator.shutdown()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show squad and transfer suggestions for a user")
    parser.add_argument("--user", type=int, required=True, help="Internal user id")
    parser.add_argument("--squad-only", action="store_true", help="Only print the squad")
    args = parser.parse_args()
    sys.exit(asyncio.run(suggest_transfers(args.user, args.squad_only)))
