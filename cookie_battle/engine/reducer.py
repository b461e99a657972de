"""
Round orchestrator.
Applies actions to session state, enforcing the status machine and producing new state.
Returns (new_state, events) where events describe what happened.

Status flow: setup -> betting -> targeting -> battle -> result -> (betting | finished)
"""

import logging

from cookie_battle.engine import OPERATOR
from cookie_battle.engine import bets as registry
from cookie_battle.engine import ledger
from cookie_battle.engine.actions import Action
from cookie_battle.engine.combat import resolve_combat, unused_defense_penalty
from cookie_battle.engine.errors import IllegalTransitionError, ValidationError
from cookie_battle.engine.events import (
    GameEvent,
    bet_submitted,
    combat_resolved,
    log_appended,
    phase_changed,
    resources_changed,
    round_started,
    session_finished,
    target_selected,
    team_eliminated,
    unused_defense_applied,
)
from cookie_battle.engine.narrator import (
    narrate_battle,
    narrate_elimination,
    narrate_members,
    narrate_unused_defense,
    round_header,
)
from cookie_battle.engine.settlement import compute_settlement, sole_winner
from cookie_battle.engine.state import BattleBet, RoundRecord, SessionState, UnusedDefense

LOGGER = logging.getLogger(__name__)

# Status rules: which action types are allowed in which status
PHASE_ALLOWED_ACTIONS = {
    "setup": ["start_session", "adjust_resources", "end_session"],
    "betting": ["submit_bet", "start_targeting", "end_session"],
    "targeting": ["submit_target", "resolve_battle", "end_session"],
    "battle": [],
    "result": ["advance_round", "adjust_resources", "end_session"],
    "finished": [],
}

OPERATOR_ACTIONS = {
    "start_session",
    "start_targeting",
    "resolve_battle",
    "advance_round",
    "end_session",
    "adjust_resources",
}


def _validate_action_for_phase(action: Action, state: SessionState) -> None:
    """Validate that an action is allowed in the current status and by this actor."""
    if state.status == "finished":
        raise IllegalTransitionError("Session is finished")

    allowed_actions = PHASE_ALLOWED_ACTIONS.get(state.status, [])
    if action.type not in allowed_actions:
        raise IllegalTransitionError(
            f"Action '{action.type}' is not allowed in status '{state.status}'. "
            f"Allowed actions: {', '.join(allowed_actions) or 'none'}"
        )

    if action.type in OPERATOR_ACTIONS and action.actor != OPERATOR:
        raise ValidationError(f"Only the operator can {action.type}")


def apply_action(state: SessionState, action: Action) -> tuple[SessionState, list[GameEvent]]:
    """
    Apply a single action to the current state, returning new state and events.
    The given state is never mutated; a rejected action leaves nothing behind.

    Raises:
        IllegalTransitionError: action not allowed now (wrong status, stale round, missing bets)
        ValidationError: bad bet, target, roll or actor
        NotFoundError: unknown team id
    """
    _validate_action_for_phase(action, state)

    new_state = state.copy()
    events: list[GameEvent] = []

    if action.type == "start_session":
        new_state, evts = _handle_start_session(new_state)
        events.extend(evts)

    elif action.type == "submit_bet":
        new_state, evts = _handle_submit_bet(new_state, action)
        events.extend(evts)

    elif action.type == "start_targeting":
        new_state, evts = _handle_start_targeting(new_state)
        events.extend(evts)

    elif action.type == "submit_target":
        new_state, evts = _handle_submit_target(new_state, action)
        events.extend(evts)

    elif action.type == "resolve_battle":
        new_state, evts = _handle_resolve_battle(new_state, action)
        events.extend(evts)

    elif action.type == "advance_round":
        new_state, evts = _handle_advance_round(new_state)
        events.extend(evts)

    elif action.type == "end_session":
        new_state, evts = _handle_end_session(new_state, action)
        events.extend(evts)

    elif action.type == "adjust_resources":
        new_state, evts = _handle_adjust_resources(new_state, action)
        events.extend(evts)

    else:
        raise ValidationError(f"Unknown action type: {action.type}")

    return new_state, events


def _set_status(state: SessionState, new_status: str, events: list[GameEvent]) -> None:
    old_status = state.status
    state.status = new_status
    events.append(phase_changed(old_status, new_status, state.round_number))


def _handle_start_session(state: SessionState) -> tuple[SessionState, list[GameEvent]]:
    """
    Leave setup. Teams without cookies are out before round 1; at least two teams must remain.
    """
    events: list[GameEvent] = []
    if len(state.teams) < 2:
        raise IllegalTransitionError("A session needs at least two teams")

    for team in state.teams.values():
        if team.resources <= 0:
            team.resources = 0
            team.is_eliminated = True
            team.eliminated_round = 0
    active = ledger.active_team_ids(state)
    if len(active) < 2:
        raise IllegalTransitionError("A session needs at least two teams with cookies")

    for team in state.teams.values():
        team.start_resources = team.resources
        team.is_ready = False
    state.bets = {}
    state.round_number = 1
    _set_status(state, "betting", events)
    events.append(round_started(state.round_number, active))
    return state, events


def _handle_submit_bet(state: SessionState, action: Action) -> tuple[SessionState, list[GameEvent]]:
    bet = BattleBet(
        team_id=action.actor,
        attack_target_id=action.payload.get("attack_target_id"),
        attack_amount=action.payload.get("attack_amount"),
        defense_amount=action.payload.get("defense_amount"),
    )
    recorded = registry.submit_bet(state, bet)
    return state, [bet_submitted(recorded.team_id, recorded.attack_amount, recorded.defense_amount)]


def _handle_start_targeting(state: SessionState) -> tuple[SessionState, list[GameEvent]]:
    events: list[GameEvent] = []
    if not registry.all_submitted(state):
        pending = [tid for tid in ledger.active_team_ids(state) if tid not in state.bets]
        raise IllegalTransitionError(f"Waiting for bets from: {', '.join(pending)}")
    _set_status(state, "targeting", events)
    return state, events


def _handle_submit_target(state: SessionState, action: Action) -> tuple[SessionState, list[GameEvent]]:
    bet = registry.submit_target(state, action.actor, action.payload.get("target_id"))
    return state, [target_selected(bet.team_id, bet.attack_target_id)]


def _handle_resolve_battle(state: SessionState, action: Action) -> tuple[SessionState, list[GameEvent]]:
    """
    Resolve every attack of the current round in one step.

    All pairs are computed from the same bet snapshot and pre-round balances; the net change
    per team is summed and applied once, so the order of attacks never matters. Teams that
    bet on defense but were not attacked forfeit part of that defense.
    """
    events: list[GameEvent] = []
    round_number = action.payload.get("round_number")
    if round_number != state.round_number:
        raise IllegalTransitionError(
            f"Round {round_number} is not the current round ({state.round_number})"
        )
    if state.get_round(state.round_number) is not None:
        raise IllegalTransitionError(f"Round {state.round_number} is already resolved")
    if not registry.all_targeted(state):
        pending = [
            tid for tid, bet in state.bets.items()
            if bet.attack_amount > 0 and bet.attack_target_id is None
        ]
        raise IllegalTransitionError(f"Waiting for targets from: {', '.join(pending)}")

    dice_rolls = action.payload.get("dice_rolls") or {}
    pairs = registry.attack_pairs(state)
    for attacker_id, *_ in pairs:
        if attacker_id not in dice_rolls:
            raise ValidationError(f"Missing dice roll for attacker {attacker_id}")

    # Everything below is computed before any balance changes
    record = RoundRecord(round_number=state.round_number)
    net: dict[str, int] = {tid: 0 for tid in state.teams}
    for attacker_id, defender_id, attack_amount, defense_amount in pairs:
        result = resolve_combat(
            state.round_number,
            attacker_id,
            defender_id,
            attack_amount,
            defense_amount,
            dice_rolls[attacker_id],
            state.settings,
        )
        if result is None:
            continue
        record.battles.append(result)
        net[attacker_id] += result.attacker_change
        net[defender_id] += result.defender_change

    attacked = {defender_id for _, defender_id, _, _ in pairs}
    for tid in state.teams:
        bet = state.bets.get(tid)
        if bet is None or bet.defense_amount <= 0 or tid in attacked:
            continue
        penalty = unused_defense_penalty(bet.defense_amount, state.settings)
        record.unused_defense.append(UnusedDefense(tid, bet.defense_amount, penalty))
        net[tid] -= penalty

    _set_status(state, "battle", events)
    for result in record.battles:
        events.append(combat_resolved(result.to_dict()))
    for unused in record.unused_defense:
        events.append(unused_defense_applied(unused.team_id, unused.defense_amount, unused.penalty))

    for tid, delta in net.items():
        if delta == 0:
            continue
        team = state.teams[tid]
        old_amount = team.resources
        was_eliminated = team.is_eliminated
        new_amount = ledger.adjust(state, tid, delta)
        record.deltas[tid] = new_amount - old_amount
        events.append(resources_changed(tid, old_amount, new_amount, "battle"))
        if team.is_eliminated and not was_eliminated:
            record.eliminated.append(tid)
            events.append(team_eliminated(tid, state.round_number))

    LOGGER.debug(
        "Round %s resolved: %d battles, %d idle defenses, eliminated=%s",
        state.round_number,
        len(record.battles),
        len(record.unused_defense),
        record.eliminated,
    )

    lines = _narrate_round(state, record, _member_names(action.payload.get("members")))
    state.battle_log.extend(lines)
    events.append(log_appended(lines))

    state.rounds.append(record)
    _set_status(state, "result", events)
    return state, events


def _member_names(raw) -> dict[str, list[str]]:
    """team_id -> player names from a resolve_battle payload; anything malformed is ignored."""
    if not isinstance(raw, dict):
        return {}
    return {
        str(tid): [str(n) for n in names if isinstance(n, str) and n]
        for tid, names in raw.items()
        if isinstance(names, list)
    }


def _narrate_round(
    state: SessionState,
    record: RoundRecord,
    members: dict[str, list[str]],
) -> list[str]:
    def label(tid: str) -> str:
        return state.teams[tid].label

    lines = [round_header(record.round_number)]
    for result in record.battles:
        lines.append(narrate_battle(result, label(result.attacker_id), label(result.defender_id)))
        lines.extend(narrate_members(result, members.get(result.attacker_id, [])))
    for unused in record.unused_defense:
        lines.append(narrate_unused_defense(record.round_number, unused, label(unused.team_id)))
    for tid in record.eliminated:
        lines.append(narrate_elimination(record.round_number, tid, label(tid)))
    return lines


def _terminal_reason(state: SessionState) -> str | None:
    """Why the session ends after the current round, or None if play continues."""
    if len(ledger.active_team_ids(state)) <= 1:
        return "elimination"
    limit = state.settings.round_limit
    if limit > 0 and state.round_number >= limit:
        return "round_limit"
    return None


def _handle_advance_round(state: SessionState) -> tuple[SessionState, list[GameEvent]]:
    reason = _terminal_reason(state)
    if reason is not None:
        return _finish_session(state, reason)

    events: list[GameEvent] = []
    registry.clear_bets(state)
    state.round_number += 1
    _set_status(state, "betting", events)
    events.append(round_started(state.round_number, ledger.active_team_ids(state)))
    return state, events


def _handle_end_session(state: SessionState, action: Action) -> tuple[SessionState, list[GameEvent]]:
    """Forced finish. Bets of an unresolved round are dropped; balances stay as they are."""
    reason = action.payload.get("reason") or "operator"
    return _finish_session(state, reason)


def _handle_adjust_resources(state: SessionState, action: Action) -> tuple[SessionState, list[GameEvent]]:
    team_id = action.payload.get("team_id")
    delta = action.payload.get("delta")
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError(f"delta must be an integer, got {delta!r}")
    team = ledger.get_team(state, team_id)
    if team.is_eliminated:
        raise ValidationError(f"Team {team_id} is eliminated and cannot be adjusted")

    events: list[GameEvent] = []
    old_amount = team.resources
    new_amount = ledger.adjust(state, team_id, delta)
    reason = action.payload.get("reason") or "adjustment"
    events.append(resources_changed(team_id, old_amount, new_amount, reason))
    if team.is_eliminated:
        events.append(team_eliminated(team_id, state.round_number))
        if state.status != "setup":
            line = narrate_elimination(state.round_number, team_id, team.label)
            state.battle_log.append(line)
            events.append(log_appended([line]))
    return state, events


def _finish_session(state: SessionState, ended_by: str) -> tuple[SessionState, list[GameEvent]]:
    events: list[GameEvent] = []
    registry.clear_bets(state)
    state.settlements = compute_settlement(state)
    state.winner = sole_winner(state.settlements)
    state.ended_by = ended_by
    _set_status(state, "finished", events)
    events.append(session_finished(
        ended_by,
        state.winner,
        [s.to_dict() for s in state.settlements],
    ))
    LOGGER.debug("Session finished (%s) after round %s, winner=%s", ended_by, state.round_number, state.winner)
    return state, events


def replay_from_actions(
    initial_state: SessionState,
    actions: list[Action],
) -> tuple[SessionState, list[GameEvent]]:
    """
    Replay a series of actions from an initial state.
    Event sourcing: state is derived from action log. Dice travel inside resolve_battle,
    so a replay always reproduces the same session.

    Returns:
        Tuple of (final_state, all_events) after all actions applied
    """
    current_state = initial_state.copy()
    all_events: list[GameEvent] = []

    for action in actions:
        current_state, events = apply_action(current_state, action)
        all_events.extend(events)

    return current_state, all_events
