"""
Session state serialization and settings validation.
"""

import pytest

from cookie_battle.engine.definitions import BattleSettings
from cookie_battle.engine.errors import ValidationError
from cookie_battle.engine.state import SessionState
from cookie_battle.engine.utils import initialize_game_state


def test_json_round_trip_after_a_round(make_session, play_round):
    state = make_session(a=100, b=100, c=100)
    state, _ = play_round(
        state,
        {"a": (50, 0, "b"), "b": (0, 50, None), "c": (0, 40, None)},
        {"a": 30},
    )

    restored = SessionState.from_json(state.to_json())

    assert restored.to_dict() == state.to_dict()
    assert restored.results[0].attacker_won
    assert restored.settings.policy.id == "standard"


def test_save_and_load(make_session, tmp_path):
    state = make_session()
    path = tmp_path / "session.json"

    state.save(str(path))

    assert SessionState.load(str(path)).to_dict() == state.to_dict()


def test_from_dict_tolerates_missing_and_malformed_fields():
    state = SessionState.from_dict({
        "status": "exploded",
        "round_number": "three",
        "teams": {"a": {"name": "A", "resources": -5}, "b": "junk"},
        "bets": {"a": {"attack_amount": "x"}},
        "rounds": "nope",
        "battle_log": None,
    })

    assert state.status == "setup"
    assert state.round_number == 0
    assert list(state.teams) == ["a"]
    assert state.teams["a"].resources == 0
    assert state.bets["a"].attack_amount == 0
    assert state.rounds == []
    assert state.battle_log == []


def test_legacy_policy_name_in_stored_settings():
    state = SessionState.from_dict({"settings": {"loss_mechanism": "gentle"}})

    assert state.settings.loss_mechanism == "soft"
    assert state.settings.policy.attacker_gain_on_win == 20


def test_stored_policy_snapshot_wins_over_current_table():
    snapshot = {
        "id": "house_rules",
        "display_name": "House rules",
        "attacker_gain_on_win": 10,
        "defender_loss_on_win": 40,
        "attacker_loss_on_lose": 40,
        "defender_gain_on_lose": 10,
    }

    settings = BattleSettings.from_dict({"policy": snapshot})

    assert settings.loss_mechanism == "house_rules"
    assert settings.policy.defender_loss_on_win == 40
    settings.validate()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_resources": -1},
        {"round_limit": 1.5},
        {"unused_defense_penalty": 120},
        {"min_win_probability": 60, "max_win_probability": 40},
        {"max_win_probability": 140},
    ],
)
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ValidationError):
        BattleSettings(**kwargs).validate()


def test_initialize_game_state_defaults_and_ids():
    state = initialize_game_state(
        [{"name": "Red Dragons", "emblem": "🐉"}, {"name": "Wolves", "resources": 40}],
        BattleSettings(initial_resources=70),
    )

    assert state.status == "setup"
    assert list(state.teams) == ["red_dragons", "wolves"]
    assert state.teams["red_dragons"].resources == 70
    assert state.teams["wolves"].resources == 40
    assert state.teams["red_dragons"].label == "🐉 Red Dragons"


@pytest.mark.parametrize(
    "teams",
    [
        [{"name": "A"}, {"name": "a"}],
        [{"name": ""}, {"name": "B"}],
        [{"name": "A", "resources": -3}, {"name": "B"}],
    ],
)
def test_initialize_game_state_rejects_bad_teams(teams):
    with pytest.raises(ValidationError):
        initialize_game_state(teams)


@pytest.mark.parametrize("team", [{"name": "Operator"}, {"name": "Staff", "id": "operator"}])
def test_operator_id_cannot_be_a_team(team):
    with pytest.raises(ValidationError, match="reserved"):
        initialize_game_state([team, {"name": "Wolves"}])
