"""
Errors raised by the sync and analytics components.

Upstream failures are raised by the FPL client as
``fpl_api.client.UpstreamUnavailable``; everything here is raised by our own
decision logic.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for sync/analytics errors."""
    pass


class NoLinkedTeam(SyncError):
    """The user has no FPL team id linked to their account."""

    def __init__(self, user_id):
        super().__init__(f"User {user_id} has no FPL team ID set")
        self.user_id = user_id


class DataIntegrityError(SyncError):
    """A bulk sync payload is internally inconsistent (e.g. a player's club is missing)."""
    pass


class CurrentGameweekUnknown(SyncError):
    """No current gameweek could be resolved for a team."""

    def __init__(self, team_id: Optional[str] = None):
        super().__init__(f"Current gameweek is not available for team {team_id}")
        self.team_id = team_id
