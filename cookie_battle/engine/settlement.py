"""
Final settlement: per-team totals and ranking once a session is finished.
"""

from cookie_battle.engine.state import SessionState, Settlement


def compute_settlement(state: SessionState) -> list[Settlement]:
    """
    Build one Settlement per team, ordered by rank.

    Wins and losses count both sides of every battle (attacker and defender).
    resources_won / resources_lost sum the positive / negative battle changes;
    defense_penalty sums forfeited idle defense. Rank is by final resources,
    ties share a rank (1, 1, 3) and are listed by team name.
    """
    rows: dict[str, dict] = {
        tid: {
            "wins": 0,
            "losses": 0,
            "won": 0,
            "lost": 0,
            "penalty": 0,
        }
        for tid in state.teams
    }

    def _book(team_id: str, won: bool, change: int) -> None:
        row = rows.get(team_id)
        if row is None:
            return
        if won:
            row["wins"] += 1
        else:
            row["losses"] += 1
        if change > 0:
            row["won"] += change
        else:
            row["lost"] += -change

    for record in state.rounds:
        for result in record.battles:
            _book(result.attacker_id, result.attacker_won, result.attacker_change)
            _book(result.defender_id, not result.attacker_won, result.defender_change)
        for unused in record.unused_defense:
            if unused.team_id in rows:
                rows[unused.team_id]["penalty"] += unused.penalty

    ordered = sorted(
        state.teams.values(),
        key=lambda t: (-t.resources, t.name, t.id),
    )
    settlements: list[Settlement] = []
    rank = 0
    previous = None
    for position, team in enumerate(ordered, start=1):
        if team.resources != previous:
            rank = position
            previous = team.resources
        row = rows[team.id]
        settlements.append(Settlement(
            team_id=team.id,
            team_name=team.name,
            start_resources=team.start_resources,
            final_resources=team.resources,
            net_change=team.resources - team.start_resources,
            total_wins=row["wins"],
            total_losses=row["losses"],
            resources_won=row["won"],
            resources_lost=row["lost"],
            defense_penalty=row["penalty"],
            is_eliminated=team.is_eliminated,
            rank=rank,
        ))
    return settlements


def sole_winner(settlements: list[Settlement]) -> str | None:
    """Team id of the only rank-1 team, or None on a tie (or no teams)."""
    top = [s for s in settlements if s.rank == 1]
    return top[0].team_id if len(top) == 1 else None
