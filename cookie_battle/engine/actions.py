"""
Action definitions for a battle session.
Actions are immutable, deterministic instructions: dice are drawn before the action is built,
so replaying the same actions always yields the same session.
"""

from dataclasses import dataclass

from cookie_battle.engine import OPERATOR


@dataclass(frozen=True)
class Action:
    """Base action class. All actions have a type, an actor, and a payload."""
    type: str  # e.g., "submit_bet", "resolve_battle", "advance_round"
    actor: str  # team_id for team actions, OPERATOR for operator actions
    payload: dict  # Action-specific data


def start_session() -> Action:
    """Leave setup and open betting for round 1. Needs at least two teams with cookies."""
    return Action(type="start_session", actor=OPERATOR, payload={})


def submit_bet(team_id: str, attack_amount: int, defense_amount: int) -> Action:
    """
    Record a team's bet for the round (replaces the team's earlier bet, if any).
    Example: submit_bet("dragons", 50, 30)
    """
    return Action(
        type="submit_bet",
        actor=team_id,
        payload={
            "attack_amount": attack_amount,
            "defense_amount": defense_amount,
        },
    )


def start_targeting() -> Action:
    """Close betting and open target selection. Every active team must have bet."""
    return Action(type="start_targeting", actor=OPERATOR, payload={})


def submit_target(team_id: str, target_id: str | None) -> Action:
    """
    Choose the team to attack. Teams with a zero attack bet pass None (or skip it entirely).
    Example: submit_target("dragons", "wolves")
    """
    return Action(type="submit_target", actor=team_id, payload={"target_id": target_id})


def resolve_battle(
    round_number: int,
    dice_rolls: dict[str, int],
    members: dict[str, list[str]] | None = None,
) -> Action:
    """
    Resolve all attacks of the round.

    dice_rolls maps attacker team_id -> roll (1..DICE_SIDES) and must cover every attack.
    round_number must be the current round; resolving a round twice is rejected.
    members optionally maps team_id -> player display names for the battle narration.

    Example: resolve_battle(1, {"dragons": 42, "wolves": 87}, {"dragons": ["mina", "joon"]})
    """
    payload = {"round_number": round_number, "dice_rolls": dict(dice_rolls)}
    if members:
        payload["members"] = {tid: list(names) for tid, names in members.items()}
    return Action(type="resolve_battle", actor=OPERATOR, payload=payload)


def advance_round() -> Action:
    """Leave the result screen: next round, or finish if the session is over."""
    return Action(type="advance_round", actor=OPERATOR, payload={})


def end_session(reason: str = "operator") -> Action:
    """Force the session to finish from any status. Unresolved bets are dropped."""
    return Action(type="end_session", actor=OPERATOR, payload={"reason": reason})


def adjust_resources(team_id: str, delta: int, reason: str = "") -> Action:
    """
    Operator adjustment of a team's cookies (bonus or penalty) outside of battle.
    Only in setup or on the result screen.
    """
    return Action(
        type="adjust_resources",
        actor=OPERATOR,
        payload={"team_id": team_id, "delta": delta, "reason": reason},
    )
