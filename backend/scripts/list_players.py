#!/usr/bin/env python3
"""
List mirrored players with derived metrics, or the upcoming fixture ticker.

Usage (from backend directory):
    python3 scripts/list_players.py --position MID --sort points_per_ninety --limit 20
    python3 scripts/list_players.py --search salah
    python3 scripts/list_players.py --ticker 6
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import Config
from refresh.orchestrator import SyncOrchestrator
from refresh.players import PlayerListFilters, SortDirection, SortKey
from utils.logger import setup_logging


async def list_players(args) -> None:
    setup_logging()
    orchestrator = SyncOrchestrator(Config())
    await orchestrator.initialize()

    try:
        if args.ticker:
            ticker = await orchestrator.catalog.get_fixture_ticker(args.ticker)
            print("GWs: " + ", ".join(str(e) for e in ticker["events"]))
            for row in ticker["rows"]:
                cells = [
                    f"{f['opponent_short_name']}{'(H)' if f['is_home'] else '(A)'}:{f['difficulty']}"
                    for f in row["fixtures"]
                ]
                print(f"{row['club_short_name']:<4} " + "  ".join(cells))
            return

        players = await orchestrator.catalog.list(PlayerListFilters(
            club_external_id=args.club,
            position=args.position,
            search=args.search,
            min_minutes=args.min_minutes,
            offset=args.offset,
            limit=args.limit,
            sort_key=SortKey(args.sort),
            sort_direction=SortDirection(args.direction),
        ))
        for p in players:
            print(
                f"{p['web_name']:<18} {p['club']['short_name'] or '':<4} {p['position']:<4} "
                f"£{p['value_millions']:.1f}m  pts {p['total_points']}  min {p['minutes']}  "
                f"ppm {p['points_per_million']}  p90 {p['points_per_ninety']}  "
                f"next3 {p['next3_difficulty_sum']}  {p['availability']}"
            )
    finally:
        await orchestrator.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List mirrored FPL players")
    parser.add_argument("--club", type=int, help="Club external id")
    parser.add_argument("--position", choices=["GK", "DEF", "MID", "FWD"])
    parser.add_argument("--search", help="Case-insensitive name substring")
    parser.add_argument("--min-minutes", type=int)
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--sort", choices=[k.value for k in SortKey], default=SortKey.PRICE.value)
    parser.add_argument("--direction", choices=[d.value for d in SortDirection], default=SortDirection.DESC.value)
    parser.add_argument("--ticker", type=int, metavar="N", help="Show fixture ticker for N gameweeks instead")
    asyncio.run(list_players(parser.parse_args()))
