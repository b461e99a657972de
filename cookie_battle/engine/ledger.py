"""
Team ledger: cookie balances and elimination.
Balances never go below 0, and a team that reaches 0 is eliminated for good.
"""

from cookie_battle.engine.errors import NotFoundError
from cookie_battle.engine.state import SessionState, Team


def get_team(state: SessionState, team_id: str) -> Team:
    """Return the team or raise NotFoundError (an unknown id is a caller bug)."""
    team = state.teams.get(team_id)
    if team is None:
        raise NotFoundError(f"Unknown team: {team_id}")
    return team


def adjust(state: SessionState, team_id: str, delta: int) -> int:
    """
    Apply a signed delta to a team's balance, clamped at 0, and return the new balance.
    A balance of 0 marks the team eliminated in the current round (never reverted).
    Modifies state in place.
    """
    team = get_team(state, team_id)
    team.resources = max(0, team.resources + int(delta))
    if team.resources == 0 and not team.is_eliminated:
        team.is_eliminated = True
        team.eliminated_round = state.round_number
        team.is_ready = False
    return team.resources


def is_active(state: SessionState, team_id: str) -> bool:
    """True iff the team exists and is not eliminated."""
    team = state.teams.get(team_id)
    return team is not None and not team.is_eliminated


def active_team_ids(state: SessionState) -> list[str]:
    """Ids of teams still in the game, in team order."""
    return [tid for tid, team in state.teams.items() if not team.is_eliminated]
