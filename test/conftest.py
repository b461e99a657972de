"""
Shared fixtures. The API tests use a throwaway SQLite file; the environment is set before
cookie_battle.api is imported anywhere.
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="cookie_battle_test_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402

from cookie_battle.engine.actions import (  # noqa: E402
    resolve_battle,
    start_session,
    start_targeting,
    submit_bet,
    submit_target,
)
from cookie_battle.engine.definitions import BattleSettings  # noqa: E402
from cookie_battle.engine.reducer import apply_action  # noqa: E402
from cookie_battle.engine.utils import initialize_game_state  # noqa: E402


@pytest.fixture
def make_session():
    """
    Factory: make_session(a=100, b=100, started=True, **settings) -> SessionState.
    Keyword team ids map to starting cookies, in the given order.
    """
    def _make(started: bool = True, settings: dict | None = None, **teams: int):
        teams = teams or {"a": 100, "b": 100}
        state = initialize_game_state(
            [
                {"id": tid, "name": tid.upper(), "emblem": "🍪", "resources": amount}
                for tid, amount in teams.items()
            ],
            BattleSettings(**(settings or {})),
        )
        if started:
            state, _ = apply_action(state, start_session())
        return state

    return _make


@pytest.fixture
def play_round():
    """
    Factory: play_round(state, bets, rolls) -> (state, events of the battle).
    bets: {team_id: (attack, defense, target_or_None)}; rolls: {attacker_id: roll}.
    Leaves the session on the result screen.
    """
    def _play(state, bets: dict, rolls: dict | None = None):
        for team_id, (attack, defense, _) in bets.items():
            state, _ = apply_action(state, submit_bet(team_id, attack, defense))
        state, _ = apply_action(state, start_targeting())
        for team_id, (attack, _, target) in bets.items():
            if attack > 0:
                state, _ = apply_action(state, submit_target(team_id, target))
        return apply_action(state, resolve_battle(state.round_number, rolls or {}))

    return _play
