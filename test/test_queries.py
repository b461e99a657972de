"""
Read-only queries used by the UI and the HTTP layer.
"""

from cookie_battle.engine.actions import start_targeting, submit_bet, submit_target
from cookie_battle.engine.queries import (
    get_attack_pairs,
    get_available_action_types,
    get_pending_teams,
    get_round_results,
    get_session_summary,
    get_target_options,
    get_team_standings,
    validate_action,
)
from cookie_battle.engine.reducer import apply_action


def test_validate_action_reports_without_applying(make_session):
    state = make_session(a=100, b=100)

    bad = validate_action(state, submit_bet("a", 200, 0))
    good = validate_action(state, submit_bet("a", 50, 50))

    assert not bad.valid and "exceeds" in bad.error
    assert good.to_dict() == {"valid": True, "error": None}
    assert state.bets == {}


def test_available_actions_follow_readiness(make_session):
    state = make_session(a=100, b=100)
    assert get_available_action_types(state) == ["submit_bet", "end_session"]
    assert get_pending_teams(state) == ["a", "b"]

    state, _ = apply_action(state, submit_bet("a", 30, 0))
    state, _ = apply_action(state, submit_bet("b", 0, 20))
    assert "start_targeting" in get_available_action_types(state)

    state, _ = apply_action(state, start_targeting())
    assert get_pending_teams(state) == ["a"]
    assert "resolve_battle" not in get_available_action_types(state)

    state, _ = apply_action(state, submit_target("a", "b"))
    assert get_pending_teams(state) == []
    assert "resolve_battle" in get_available_action_types(state)
    assert get_attack_pairs(state) == [
        {"attacker_id": "a", "defender_id": "b", "attack_amount": 30, "defense_amount": 20}
    ]


def test_target_options_skip_self_and_eliminated(make_session):
    state = make_session(a=100, b=100, c=100)
    state.teams["c"].is_eliminated = True

    assert get_target_options(state, "a") == ["b"]


def test_standings_and_summary(make_session, play_round):
    state = make_session(a=100, b=100)
    state, _ = play_round(state, {"a": (50, 0, "b"), "b": (0, 50, None)}, {"a": 30})

    standings = get_team_standings(state)
    summary = get_session_summary(state)

    assert [s["team_id"] for s in standings] == ["a", "b"]
    assert summary["status"] == "result"
    assert summary["total_resources"] == 165
    assert summary["rounds_resolved"] == 1
    assert summary["available_actions"] == ["advance_round", "adjust_resources", "end_session"]
    assert get_round_results(state)["deltas"] == {"a": 15, "b": -50}
    assert get_round_results(state, 7) is None
