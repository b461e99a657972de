"""
Bet registry for the current round.
Betting phase records attack/defense amounts; the targeting phase adds the attack target.
Each team only ever writes its own slot, so a resubmission simply replaces the earlier bet.
"""

from cookie_battle.engine.errors import ValidationError
from cookie_battle.engine.ledger import active_team_ids, get_team, is_active
from cookie_battle.engine.state import BattleBet, SessionState


def _check_amount(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} must not be negative, got {value}")


def validate_bet(state: SessionState, bet: BattleBet) -> None:
    """
    Check a betting-phase submission without recording it.
    Raises NotFoundError for an unknown team, ValidationError for a broken invariant.
    """
    team = get_team(state, bet.team_id)
    if team.is_eliminated:
        raise ValidationError(f"Team {team.id} is eliminated and cannot bet")
    _check_amount("attack_amount", bet.attack_amount)
    _check_amount("defense_amount", bet.defense_amount)
    total = bet.attack_amount + bet.defense_amount
    if total > team.resources:
        raise ValidationError(
            f"Bet total {total} exceeds {team.id}'s {team.resources} cookies"
        )
    if bet.attack_target_id is not None:
        raise ValidationError("Attack targets are chosen in the targeting phase")


def submit_bet(state: SessionState, bet: BattleBet) -> BattleBet:
    """Validate and record a bet (replacing the team's previous one). Modifies state in place."""
    validate_bet(state, bet)
    recorded = BattleBet(
        team_id=bet.team_id,
        attack_target_id=None,
        attack_amount=bet.attack_amount,
        defense_amount=bet.defense_amount,
    )
    state.bets[bet.team_id] = recorded
    state.teams[bet.team_id].is_ready = True
    return recorded


def validate_target(state: SessionState, team_id: str, target_id: str | None) -> None:
    """
    Check a targeting-phase submission.
    A target requires a positive attack bet, and a positive attack bet requires a target.
    """
    get_team(state, team_id)
    bet = state.bets.get(team_id)
    if bet is None:
        raise ValidationError(f"Team {team_id} has no bet this round")
    if target_id is None:
        if bet.attack_amount > 0:
            raise ValidationError(
                f"Team {team_id} bet {bet.attack_amount} on attack and must choose a target"
            )
        return
    if bet.attack_amount == 0:
        raise ValidationError(f"Team {team_id} bet nothing on attack and cannot choose a target")
    if target_id == team_id:
        raise ValidationError("A team cannot attack itself")
    if not is_active(state, target_id):
        raise ValidationError(f"Target {target_id} is not a team still in the game")


def submit_target(state: SessionState, team_id: str, target_id: str | None) -> BattleBet:
    """Validate and record the attack target for a team's bet. Modifies state in place."""
    validate_target(state, team_id, target_id)
    bet = state.bets[team_id]
    bet.attack_target_id = target_id
    return bet


def all_submitted(state: SessionState, team_ids: list[str] | None = None) -> bool:
    """True iff every active team (or every team in team_ids) has a bet this round."""
    ids = team_ids if team_ids is not None else active_team_ids(state)
    return all(tid in state.bets for tid in ids)


def all_targeted(state: SessionState) -> bool:
    """True iff every bet with a positive attack amount has a target."""
    return all(
        bet.attack_target_id is not None
        for bet in state.bets.values()
        if bet.attack_amount > 0
    )


def attack_pairs(state: SessionState) -> list[tuple[str, str, int, int]]:
    """
    (attacker_id, defender_id, attack_amount, defense_amount) for every targeted attack,
    in team order. Each attack meets the defender's whole defense bet.
    """
    pairs = []
    for tid in state.teams:
        bet = state.bets.get(tid)
        if bet is None or bet.attack_amount <= 0 or bet.attack_target_id is None:
            continue
        defender_bet = state.bets.get(bet.attack_target_id)
        defense = defender_bet.defense_amount if defender_bet else 0
        pairs.append((tid, bet.attack_target_id, bet.attack_amount, defense))
    return pairs


def clear_bets(state: SessionState) -> None:
    """Reset the registry for the next round. Modifies state in place."""
    state.bets = {}
    for team in state.teams.values():
        team.is_ready = False
