"""
Session events for UI hooks and logging.
Events describe what happened during action processing.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Phase/Round events
PHASE_CHANGED = "phase_changed"
ROUND_STARTED = "round_started"

# Bet events
BET_SUBMITTED = "bet_submitted"
TARGET_SELECTED = "target_selected"

# Combat events
COMBAT_RESOLVED = "combat_resolved"
UNUSED_DEFENSE_APPLIED = "unused_defense_applied"

# Ledger events
RESOURCES_CHANGED = "resources_changed"
TEAM_ELIMINATED = "team_eliminated"

# Narration
LOG_APPENDED = "log_appended"

# End of session
SESSION_FINISHED = "session_finished"


# ===== Event Factory Functions =====

def phase_changed(old_status: str, new_status: str, round_number: int) -> GameEvent:
    return GameEvent(PHASE_CHANGED, {
        "old_status": old_status,
        "new_status": new_status,
        "round_number": round_number,
    })


def round_started(round_number: int, active_teams: list[str]) -> GameEvent:
    return GameEvent(ROUND_STARTED, {
        "round_number": round_number,
        "active_teams": list(active_teams),
    })


def bet_submitted(team_id: str, attack_amount: int, defense_amount: int) -> GameEvent:
    return GameEvent(BET_SUBMITTED, {
        "team_id": team_id,
        "attack_amount": attack_amount,
        "defense_amount": defense_amount,
    })


def target_selected(team_id: str, target_id: str | None) -> GameEvent:
    return GameEvent(TARGET_SELECTED, {
        "team_id": team_id,
        "target_id": target_id,
    })


def combat_resolved(result: dict[str, Any]) -> GameEvent:
    """result is a BattleResult dict."""
    return GameEvent(COMBAT_RESOLVED, dict(result))


def unused_defense_applied(team_id: str, defense_amount: int, penalty: int) -> GameEvent:
    return GameEvent(UNUSED_DEFENSE_APPLIED, {
        "team_id": team_id,
        "defense_amount": defense_amount,
        "penalty": penalty,
    })


def resources_changed(team_id: str, old_amount: int, new_amount: int, reason: str) -> GameEvent:
    return GameEvent(RESOURCES_CHANGED, {
        "team_id": team_id,
        "old_amount": old_amount,
        "new_amount": new_amount,
        "delta": new_amount - old_amount,
        "reason": reason,  # "battle", "adjustment"
    })


def team_eliminated(team_id: str, round_number: int) -> GameEvent:
    return GameEvent(TEAM_ELIMINATED, {
        "team_id": team_id,
        "round_number": round_number,
    })


def log_appended(lines: list[str]) -> GameEvent:
    return GameEvent(LOG_APPENDED, {"lines": list(lines)})


def session_finished(ended_by: str, winner: str | None, settlements: list[dict[str, Any]]) -> GameEvent:
    return GameEvent(SESSION_FINISHED, {
        "ended_by": ended_by,
        "winner": winner,
        "settlements": settlements,
    })
