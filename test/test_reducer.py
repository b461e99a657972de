"""
Round orchestrator: status machine, battle resolution, and the end of a session.
"""

import pytest

from cookie_battle.engine import OPERATOR
from cookie_battle.engine.actions import (
    Action,
    adjust_resources,
    advance_round,
    end_session,
    resolve_battle,
    start_session,
    start_targeting,
    submit_bet,
    submit_target,
)
from cookie_battle.engine.errors import IllegalTransitionError, NotFoundError, ValidationError
from cookie_battle.engine.reducer import apply_action, replay_from_actions


# ===== Setup =====

def test_start_needs_two_teams(make_session):
    state = make_session(started=False, a=100)

    with pytest.raises(IllegalTransitionError):
        apply_action(state, start_session())


def test_start_eliminates_teams_without_cookies(make_session):
    state = make_session(started=False, a=100, b=100, c=0)

    state, events = apply_action(state, start_session())

    assert state.status == "betting"
    assert state.round_number == 1
    assert state.teams["c"].is_eliminated
    assert [e.type for e in events] == ["phase_changed", "round_started"]
    assert events[1].payload["active_teams"] == ["a", "b"]


def test_start_needs_two_funded_teams(make_session):
    state = make_session(started=False, a=100, b=0)

    with pytest.raises(IllegalTransitionError):
        apply_action(state, start_session())


def test_setup_adjustment_moves_start_resources(make_session):
    state = make_session(started=False, a=100, b=100)

    state, _ = apply_action(state, adjust_resources("a", 20, "bonus"))
    state, _ = apply_action(state, start_session())

    assert state.teams["a"].start_resources == 120


# ===== Status rules =====

def test_action_outside_its_status_is_illegal(make_session):
    state = make_session()

    with pytest.raises(IllegalTransitionError):
        apply_action(state, advance_round())
    with pytest.raises(IllegalTransitionError):
        apply_action(state, submit_target("a", "b"))
    with pytest.raises(IllegalTransitionError):
        apply_action(state, adjust_resources("a", 5))


def test_only_operator_drives_the_session(make_session):
    state = make_session()

    with pytest.raises(ValidationError):
        apply_action(state, Action(type="start_targeting", actor="a", payload={}))


def test_rejected_action_leaves_state_untouched(make_session):
    state = make_session(a=100, b=100)
    before = state.to_dict()

    with pytest.raises(ValidationError):
        apply_action(state, submit_bet("a", 80, 80))

    assert state.to_dict() == before


def test_apply_action_does_not_mutate_input(make_session):
    state = make_session()

    new_state, _ = apply_action(state, submit_bet("a", 10, 10))

    assert "a" in new_state.bets
    assert state.bets == {}


def test_targeting_waits_for_every_bet(make_session):
    state = make_session(a=100, b=100)
    state, _ = apply_action(state, submit_bet("a", 10, 10))

    with pytest.raises(IllegalTransitionError, match="b"):
        apply_action(state, start_targeting())


def test_battle_waits_for_every_target(make_session):
    state = make_session(a=100, b=100)
    state, _ = apply_action(state, submit_bet("a", 10, 10))
    state, _ = apply_action(state, submit_bet("b", 0, 10))
    state, _ = apply_action(state, start_targeting())

    with pytest.raises(IllegalTransitionError):
        apply_action(state, resolve_battle(1, {"a": 5}))


def test_unknown_team_bet_is_not_found(make_session):
    state = make_session()

    with pytest.raises(NotFoundError):
        apply_action(state, submit_bet("ghost", 1, 1))


# ===== Battle =====

def test_attacker_wins_standard(make_session, play_round):
    state = make_session(a=100, b=100)

    state, events = play_round(state, {"a": (50, 0, "b"), "b": (0, 50, None)}, {"a": 30})

    assert state.status == "result"
    assert state.teams["a"].resources == 115
    assert state.teams["b"].resources == 50
    record = state.rounds[0]
    assert record.deltas == {"a": 15, "b": -50}
    assert record.battles[0].win_probability == 50
    assert "combat_resolved" in [e.type for e in events]


def test_attacker_loses_standard(make_session, play_round):
    state = make_session(a=100, b=100)

    state, _ = play_round(state, {"a": (50, 0, "b"), "b": (0, 50, None)}, {"a": 51})

    assert state.teams["a"].resources == 50
    assert state.teams["b"].resources == 115


def test_idle_defense_is_partly_forfeited(make_session, play_round):
    state = make_session(a=100, b=100, c=100)

    state, events = play_round(
        state,
        {"a": (50, 0, "b"), "b": (0, 50, None), "c": (0, 40, None)},
        {"a": 30},
    )

    assert state.teams["c"].resources == 80
    record = state.rounds[0]
    assert [(u.team_id, u.defense_amount, u.penalty) for u in record.unused_defense] == [("c", 40, 20)]
    assert "unused_defense_applied" in [e.type for e in events]


def test_attacked_defender_pays_no_idle_penalty(make_session, play_round):
    state = make_session(a=100, b=100)

    state, _ = play_round(state, {"a": (10, 0, "b"), "b": (0, 50, None)}, {"a": 100})

    assert state.rounds[0].unused_defense == []
    assert state.teams["b"].resources == 103


def test_several_attackers_drain_one_defender(make_session, play_round):
    state = make_session(a=100, b=100, c=100)

    state, events = play_round(
        state,
        {"a": (50, 0, "b"), "b": (0, 60, None), "c": (50, 0, "b")},
        {"a": 1, "c": 1},
    )

    assert state.teams["a"].resources == 118
    assert state.teams["c"].resources == 118
    assert state.teams["b"].resources == 0
    assert state.teams["b"].is_eliminated
    # applied delta is what the ledger could actually take
    assert state.rounds[0].deltas["b"] == -100
    assert state.rounds[0].eliminated == ["b"]
    assert "team_eliminated" in [e.type for e in events]


def test_outcome_does_not_depend_on_team_order(make_session, play_round):
    bets = {"a": (40, 20, "b"), "b": (30, 30, "c"), "c": (20, 40, "a")}
    rolls = {"a": 20, "b": 80, "c": 45}

    first, _ = play_round(make_session(a=100, b=100, c=100), bets, rolls)
    second, _ = play_round(make_session(c=100, a=100, b=100), bets, rolls)

    assert {t: first.teams[t].resources for t in "abc"} == {t: second.teams[t].resources for t in "abc"}


def test_missing_roll_is_rejected(make_session):
    state = make_session(a=100, b=100)
    state, _ = apply_action(state, submit_bet("a", 10, 0))
    state, _ = apply_action(state, submit_bet("b", 0, 0))
    state, _ = apply_action(state, start_targeting())
    state, _ = apply_action(state, submit_target("a", "b"))

    with pytest.raises(ValidationError):
        apply_action(state, resolve_battle(1, {}))


def test_round_is_closed_only_once(make_session, play_round):
    state = make_session(a=100, b=100)
    targeting = state
    for action in (submit_bet("a", 10, 0), submit_bet("b", 0, 10), start_targeting(), submit_target("a", "b")):
        targeting, _ = apply_action(targeting, action)

    with pytest.raises(IllegalTransitionError):
        apply_action(targeting, resolve_battle(2, {"a": 5}))  # stale/foreign round

    resolved, _ = apply_action(targeting, resolve_battle(1, {"a": 5}))
    with pytest.raises(IllegalTransitionError):
        apply_action(resolved, resolve_battle(1, {"a": 5}))
    assert len(resolved.rounds) == 1


def test_narration_is_appended(make_session, play_round):
    state = make_session(a=100, b=100)

    state, events = play_round(state, {"a": (50, 0, "b"), "b": (0, 50, None)}, {"a": 30})

    assert state.battle_log[0] == "===== Round 1 ====="
    assert "🍪 A" in state.battle_log[1] and "🍪 B" in state.battle_log[1]
    log_events = [e for e in events if e.type == "log_appended"]
    assert log_events[0].payload["lines"] == state.battle_log


def test_attacking_players_are_narrated_under_their_battle(make_session):
    state = make_session(a=100, b=100)
    state, _ = apply_action(state, submit_bet("a", 50, 0))
    state, _ = apply_action(state, submit_bet("b", 0, 50))
    state, _ = apply_action(state, start_targeting())
    state, _ = apply_action(state, submit_target("a", "b"))

    state, _ = apply_action(state, resolve_battle(1, {"a": 30}, {"a": ["mina"], "b": ["joon"]}))

    assert state.battle_log[2].startswith("  \u2514 ")
    assert "mina" in state.battle_log[2]
    assert not any("joon" in line for line in state.battle_log)


# ===== Result and the end of the session =====

def test_next_round_clears_bets(make_session, play_round):
    state = make_session(a=100, b=100)
    state, _ = play_round(state, {"a": (10, 0, "b"), "b": (0, 10, None)}, {"a": 50})

    state, events = apply_action(state, advance_round())

    assert state.status == "betting"
    assert state.round_number == 2
    assert state.bets == {}
    assert not any(t.is_ready for t in state.teams.values())
    assert events[-1].type == "round_started"


def test_double_elimination_finishes_the_session(make_session, play_round):
    state = make_session(a=100, b=10, c=10)

    state, events = play_round(
        state,
        {"a": (0, 50, None), "b": (10, 0, "a"), "c": (10, 0, "a")},
        {"b": 100, "c": 100},
    )
    statuses = [(e.payload["old_status"], e.payload["new_status"]) for e in events if e.type == "phase_changed"]
    assert statuses == [("targeting", "battle"), ("battle", "result")]
    assert state.rounds[0].eliminated == ["b", "c"]

    state, events = apply_action(state, advance_round())

    assert state.status == "finished"
    assert state.ended_by == "elimination"
    assert state.winner == "a"
    assert state.teams["a"].resources == 106
    assert events[-1].type == "session_finished"
    assert [s.team_id for s in state.settlements] == ["a", "b", "c"]


def test_round_limit_finishes_the_session(make_session, play_round):
    state = make_session(settings={"round_limit": 1}, a=100, b=100)
    state, _ = play_round(state, {"a": (10, 0, "b"), "b": (0, 20, None)}, {"a": 1})

    state, _ = apply_action(state, advance_round())

    assert state.status == "finished"
    assert state.ended_by == "round_limit"
    assert state.winner == "a"


def test_force_end_drops_unresolved_bets(make_session):
    state = make_session(a=100, b=100)
    state, _ = apply_action(state, submit_bet("a", 60, 40))

    state, _ = apply_action(state, end_session())

    assert state.status == "finished"
    assert state.ended_by == "operator"
    assert state.bets == {}
    assert state.teams["a"].resources == 100
    assert state.winner is None  # tied at 100
    assert [s.rank for s in state.settlements] == [1, 1]


def test_finished_session_accepts_nothing(make_session):
    state = make_session()
    state, _ = apply_action(state, end_session())

    with pytest.raises(IllegalTransitionError, match="finished"):
        apply_action(state, end_session())
    with pytest.raises(IllegalTransitionError):
        apply_action(state, submit_bet("a", 1, 1))


def test_adjustment_on_result_screen(make_session, play_round):
    state = make_session(a=100, b=100)
    state, _ = play_round(state, {"a": (0, 0, None), "b": (0, 0, None)})

    state, events = apply_action(state, adjust_resources("b", -100, "penalty"))

    assert state.teams["b"].is_eliminated
    assert [e.type for e in events][:2] == ["resources_changed", "team_eliminated"]
    with pytest.raises(ValidationError):
        apply_action(state, adjust_resources("b", 50))

    state, _ = apply_action(state, advance_round())
    assert state.ended_by == "elimination"


def test_adjustment_needs_integer_delta(make_session):
    state = make_session(started=False)

    with pytest.raises(ValidationError):
        apply_action(state, adjust_resources("a", 1.5))


def test_replay_reproduces_the_session(make_session):
    initial = make_session(started=False, a=100, b=100, c=100)
    actions = [
        start_session(),
        submit_bet("a", 40, 20),
        submit_bet("b", 30, 30),
        submit_bet("c", 0, 50),
        start_targeting(),
        submit_target("a", "b"),
        submit_target("b", "a"),
        resolve_battle(1, {"a": 12, "b": 88}),
        advance_round(),
        submit_bet("a", 10, 10),
        end_session(),
    ]

    first, first_events = replay_from_actions(initial, actions)
    second, second_events = replay_from_actions(initial, actions)

    assert first.to_dict() == second.to_dict()
    assert [e.to_dict() for e in first_events] == [e.to_dict() for e in second_events]
    assert initial.status == "setup"
    assert first.status == "finished"


def test_operator_actor_constant():
    assert start_session().actor == OPERATOR
    assert submit_bet("a", 1, 1).actor == "a"
