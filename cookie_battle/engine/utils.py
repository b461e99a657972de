"""
Utility functions for the battle engine.
"""

import random
import re
from itertools import cycle
from typing import Any, Iterable

from cookie_battle.engine import DICE_SIDES, OPERATOR
from cookie_battle.engine.bets import attack_pairs
from cookie_battle.engine.definitions import BattleSettings
from cookie_battle.engine.errors import ValidationError
from cookie_battle.engine.state import SessionState, Team


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def initialize_game_state(
    teams: list[dict[str, Any]],
    settings: BattleSettings | None = None,
) -> SessionState:
    """
    Create a session in setup with the given teams.

    Args:
        teams: [{ "name": ..., "emblem": ..., "id": optional, "resources": optional }, ...]
               in display order. Missing resources default to settings.initial_resources.
        settings: Session settings (defaults from cookie_battle.config)

    Returns:
        SessionState with status "setup" and round 0

    Raises:
        ValidationError: bad settings, empty or duplicate team names/ids, negative resources
    """
    settings = settings if settings is not None else BattleSettings()
    settings.validate()

    team_map: dict[str, Team] = {}
    for index, entry in enumerate(teams, start=1):
        name = str(entry.get("name") or "").strip()
        if not name:
            raise ValidationError(f"Team #{index} needs a name")
        team_id = str(entry.get("id") or _slug(name) or f"team_{index}")
        if team_id == OPERATOR:
            raise ValidationError(f"Team id {OPERATOR!r} is reserved for the session operator")
        if team_id in team_map:
            raise ValidationError(f"Duplicate team id: {team_id}")
        resources = entry.get("resources")
        if resources is None:
            resources = settings.initial_resources
        if isinstance(resources, bool) or not isinstance(resources, int) or resources < 0:
            raise ValidationError(f"Team {team_id}: resources must be a non-negative integer")
        team_map[team_id] = Team(
            id=team_id,
            name=name,
            emblem=str(entry.get("emblem") or ""),
            resources=resources,
            start_resources=resources,
        )

    return SessionState(
        status="setup",
        round_number=0,
        settings=settings,
        teams=team_map,
    )


# ===== Random sources =====

class RandomSource:
    """Draws combat rolls in 1..DICE_SIDES. The only randomness a battle consumes."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng if rng is not None else random.Random()

    def roll(self) -> int:
        return self._rng.randint(1, DICE_SIDES)


class SeededRandomSource(RandomSource):
    """Reproducible rolls for demos and tests."""

    def __init__(self, seed: int | str):
        super().__init__(random.Random(seed))


class FixedRolls(RandomSource):
    """Returns the given rolls in order, cycling when they run out."""

    def __init__(self, rolls: Iterable[int]):
        super().__init__()
        rolls = list(rolls)
        if not rolls:
            raise ValueError("FixedRolls needs at least one roll")
        self._rolls = cycle(rolls)

    def roll(self) -> int:
        return next(self._rolls)


def roll_battle_dice(state: SessionState, source: RandomSource) -> dict[str, int]:
    """
    Draw one roll per attack of the current round.
    Rolls are drawn in team order so a seeded source always gives each attacker the same roll.

    Returns:
        { attacker_id: roll }, ready for actions.resolve_battle
    """
    return {attacker_id: source.roll() for attacker_id, *_ in attack_pairs(state)}


# ===== Console output =====

def print_session_state(state: SessionState, verbose: bool = False):
    """
    Pretty-print the current session state.

    Args:
        state: Current session state
        verbose: If True, also show this round's bets
    """
    print(f"\n{'='*60}")
    limit = state.settings.round_limit or "-"
    print(f"Round {state.round_number}/{limit} | Status: {state.status} | Policy: {state.settings.loss_mechanism}")
    print(f"{'='*60}")

    for team in state.teams.values():
        flag = " (eliminated)" if team.is_eliminated else ""
        ready = " ready" if team.is_ready else ""
        print(f"  {team.label:<24} {team.resources:>6} cookies{flag}{ready}")
        if verbose and team.id in state.bets:
            bet = state.bets[team.id]
            target = bet.attack_target_id or "-"
            print(f"    attack {bet.attack_amount} -> {target}, defense {bet.defense_amount}")

    if state.status == "finished":
        print(f"\nFinished ({state.ended_by}). Winner: {state.winner or 'tie'}")
        for s in state.settlements:
            print(f"  #{s.rank} {s.team_name}: {s.final_resources} ({s.net_change:+d})")
    print()


def print_battle_log(state: SessionState, round_number: int | None = None):
    """Print the narrated log, or one round's battles with their rolls."""
    if round_number is None:
        for line in state.battle_log:
            print(line)
        return

    record = state.get_round(round_number)
    print(f"\n{'='*70}")
    print(f"BATTLE LOG: round {round_number}")
    print(f"{'='*70}")
    if record is None:
        print("No battles resolved for this round")
        return
    for b in record.battles:
        outcome = "WIN" if b.attacker_won else "LOSS"
        print(
            f"  {b.attacker_id} ({b.attack_amount}) -> {b.defender_id} ({b.defense_amount}): "
            f"p={b.win_probability:.1f}% roll={b.roll} {outcome} "
            f"[{b.attacker_change:+d} / {b.defender_change:+d}]"
        )
    for u in record.unused_defense:
        print(f"  {u.team_id} idle defense {u.defense_amount}: -{u.penalty}")
    if record.eliminated:
        print(f"  Eliminated: {', '.join(record.eliminated)}")
    print(f"{'='*70}\n")
