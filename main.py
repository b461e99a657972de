"""
Main entry point for the Cookie Battle engine.
Demonstrates core functionality with a short scripted session.
"""

from cookie_battle.engine.actions import (
    adjust_resources,
    advance_round,
    resolve_battle,
    start_session,
    start_targeting,
    submit_bet,
    submit_target,
)
from cookie_battle.engine.definitions import BattleSettings
from cookie_battle.engine.errors import GameError
from cookie_battle.engine.reducer import apply_action, replay_from_actions
from cookie_battle.engine.utils import (
    SeededRandomSource,
    initialize_game_state,
    print_battle_log,
    print_session_state,
    roll_battle_dice,
)

TEAMS = [
    {"name": "Dragons", "emblem": "🐉"},
    {"name": "Wolves", "emblem": "🐺"},
    {"name": "Owls", "emblem": "🦉"},
]


def main():
    print("Cookie Battle Engine")
    print("=" * 60)

    settings = BattleSettings(round_limit=3, loss_mechanism="standard")
    initial = initialize_game_state(TEAMS, settings)
    state = initial
    actions = []

    def play(action):
        nonlocal state
        state, events = apply_action(state, action)
        actions.append(action)
        return events

    print("\n[SETUP]")
    print_session_state(state)

    # ===== SCENARIO 1: Operator bonus before the start =====
    print("\n[SCENARIO 1: Operator adjustment in setup]")
    events = play(adjust_resources("owls", 20, "early bird"))
    print(f"  Events: {[e.type for e in events]}")
    play(start_session())
    print(f"Status: {state.status}, round {state.round_number}")

    # ===== SCENARIO 2: A rejected bet changes nothing =====
    print("\n[SCENARIO 2: Over-budget bet]")
    try:
        play(submit_bet("dragons", 90, 20))
    except GameError as e:
        print(f"✓ Rejected: {e}")

    # ===== SCENARIO 3: Full rounds with seeded dice =====
    rng = SeededRandomSource(42)
    plans = [
        {"dragons": (50, 30, "wolves"), "wolves": (40, 40, "dragons"), "owls": (0, 60, None)},
        {"dragons": (30, 20, "owls"), "wolves": (20, 20, "owls"), "owls": (10, 50, "dragons")},
        {"dragons": (20, 20, "wolves"), "wolves": (10, 10, "dragons"), "owls": (30, 30, "wolves")},
    ]
    for plan in plans:
        if state.status != "betting":
            break
        print(f"\n[ROUND {state.round_number}]")
        for team_id, (attack, defense, _) in plan.items():
            if not state.teams[team_id].is_eliminated:
                team = state.teams[team_id]
                # keep the scripted bets inside what the team still has
                scale = min(1.0, team.resources / max(1, attack + defense))
                play(submit_bet(team_id, int(attack * scale), int(defense * scale)))
        play(start_targeting())
        for team_id, (_, _, target) in plan.items():
            bet = state.bets.get(team_id)
            if bet is None or bet.attack_amount == 0:
                continue
            if state.teams[target].is_eliminated:
                target = next(t for t in state.teams if t != team_id and not state.teams[t].is_eliminated)
            play(submit_target(team_id, target))
        dice = roll_battle_dice(state, rng)
        print(f"Dice: {dice}")
        play(resolve_battle(state.round_number, dice))
        print_battle_log(state, state.round_number)
        play(advance_round())

    print_session_state(state)
    print("Narrated log:")
    print_battle_log(state)

    # ===== SCENARIO 4: Replay =====
    print("\n[SCENARIO 4: Replay from the action log]")
    replayed, _ = replay_from_actions(initial, actions)
    same = replayed.to_dict() == state.to_dict()
    print(f"{'✓' if same else '✗'} Replay of {len(actions)} actions reproduces the session")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
