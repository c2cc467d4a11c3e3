#!/usr/bin/env python3
"""
Show (and optionally force-refresh) a user's team snapshot.

Without --force the snapshot is served from the database when it is fresh
enough for the current gameweek phase; with --force it is always re-fetched.

Usage (from backend directory):
    python3 scripts/sync_team.py --user 42
    python3 scripts/sync_team.py --user 42 --force
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import Config
from fpl_api.client import UpstreamUnavailable
from refresh.errors import NoLinkedTeam
from refresh.orchestrator import SyncOrchestrator
from utils.logger import setup_logging


async def sync_team(user_id: int, force: bool) -> int:
    setup_logging()
    orchestrator = SyncOrchestrator(Config())
    await orchestrator.initialize()

    try:
        if force:
            await orchestrator.snapshots.force_sync(user_id)
        overview = await orchestrator.snapshots.get_team_overview(user_id)
    except NoLinkedTeam:
        print(f"User {user_id} has no FPL team ID set.")
        return 1
    except UpstreamUnavailable as e:
        print(f"FPL API unavailable, stored snapshot left unchanged: {e}")
        return 2
    finally:
        await orchestrator.shutdown()

    print(json.dumps(overview, indent=2))
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show or refresh a user's FPL team snapshot")
    parser.add_argument("--user", type=int, required=True, help="Internal user id")
    parser.add_argument("--force", action="store_true", help="Always re-fetch from the FPL API")
    args = parser.parse_args()
    sys.exit(asyncio.run(sync_team(args.user, args.force)))
