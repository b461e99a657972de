"""
Query functions for UI integration.
These functions help the UI understand what actions are available
without mutating session state.
"""

from dataclasses import dataclass
from typing import Any

from cookie_battle.engine import bets as registry
from cookie_battle.engine import ledger
from cookie_battle.engine.actions import Action
from cookie_battle.engine.errors import GameError
from cookie_battle.engine.reducer import PHASE_ALLOWED_ACTIONS, apply_action
from cookie_battle.engine.state import SessionState


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


# ===== Action Validation =====

def validate_action(state: SessionState, action: Action) -> ValidationResult:
    """
    Validate an action without applying it.
    Returns ValidationResult with valid=True or valid=False with error message.
    """
    try:
        apply_action(state, action)
    except GameError as e:
        return ValidationResult(False, str(e))
    return ValidationResult(True)


def get_available_action_types(state: SessionState) -> list[str]:
    """Action types the current status accepts, narrowed by what is actually ready."""
    allowed = list(PHASE_ALLOWED_ACTIONS.get(state.status, []))

    if state.status == "betting" and not registry.all_submitted(state):
        allowed.remove("start_targeting")
    if state.status == "targeting" and not registry.all_targeted(state):
        allowed.remove("resolve_battle")

    return allowed


# ===== Round Queries =====

def get_pending_teams(state: SessionState) -> list[str]:
    """Active teams the round is still waiting for (bet in betting, target in targeting)."""
    if state.status == "betting":
        return [tid for tid in ledger.active_team_ids(state) if tid not in state.bets]
    if state.status == "targeting":
        return [
            tid for tid in ledger.active_team_ids(state)
            if (bet := state.bets.get(tid)) is not None
            and bet.attack_amount > 0
            and bet.attack_target_id is None
        ]
    return []


def get_attack_pairs(state: SessionState) -> list[dict[str, Any]]:
    """Attacks the next battle will resolve, in team order."""
    return [
        {
            "attacker_id": attacker_id,
            "defender_id": defender_id,
            "attack_amount": attack_amount,
            "defense_amount": defense_amount,
        }
        for attacker_id, defender_id, attack_amount, defense_amount in registry.attack_pairs(state)
    ]


def get_target_options(state: SessionState, team_id: str) -> list[str]:
    """Teams that team_id may attack."""
    return [tid for tid in ledger.active_team_ids(state) if tid != team_id]


def get_round_results(state: SessionState, round_number: int | None = None) -> dict[str, Any] | None:
    """RoundRecord dict for a round (latest resolved round by default)."""
    if round_number is None:
        record = state.rounds[-1] if state.rounds else None
    else:
        record = state.get_round(round_number)
    return record.to_dict() if record else None


# ===== Standings =====

def get_team_standings(state: SessionState) -> list[dict[str, Any]]:
    """Teams ordered by cookies (most first), active teams before eliminated ones."""
    ordered = sorted(
        state.teams.values(),
        key=lambda t: (t.is_eliminated, -t.resources, t.name),
    )
    return [
        {
            "team_id": t.id,
            "name": t.name,
            "emblem": t.emblem,
            "resources": t.resources,
            "is_eliminated": t.is_eliminated,
            "is_ready": t.is_ready,
        }
        for t in ordered
    ]


def get_session_summary(state: SessionState) -> dict[str, Any]:
    """
    Get a summary of the current session state for UI display.
    """
    return {
        "status": state.status,
        "round_number": state.round_number,
        "round_limit": state.settings.round_limit,
        "loss_mechanism": state.settings.loss_mechanism,
        "active_teams": ledger.active_team_ids(state),
        "pending_teams": get_pending_teams(state),
        "total_resources": sum(t.resources for t in state.teams.values()),
        "rounds_resolved": len(state.rounds),
        "ended_by": state.ended_by,
        "winner": state.winner,
        "available_actions": get_available_action_types(state),
    }
