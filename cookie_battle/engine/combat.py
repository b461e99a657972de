"""
Combat resolution for one attacker/defender pair.
Pure functions: the dice roll comes in as an argument and nothing touches the ledger,
so every pair of a round is computed from the same pre-round snapshot.
"""

from cookie_battle.engine import DICE_SIDES
from cookie_battle.engine.definitions import BattleSettings, LossPolicy
from cookie_battle.engine.errors import ValidationError
from cookie_battle.engine.state import BattleResult


def calculate_win_probability(
    attack_amount: int,
    defense_amount: int,
    settings: BattleSettings,
) -> float:
    """
    Attacker win probability in percent.

    attack / (attack + defense), clamped into [min_win_probability, max_win_probability]
    so neither side is ever certain. No defense means the ceiling; no attack means 0
    (no combat happens).
    """
    if attack_amount <= 0:
        return 0.0
    if defense_amount <= 0:
        return float(settings.max_win_probability)
    raw = attack_amount / (attack_amount + defense_amount) * 100
    return float(max(settings.min_win_probability, min(settings.max_win_probability, raw)))


def attacker_wins(roll: int, win_probability: float) -> bool:
    """A roll of 1..DICE_SIDES wins if it is at most the win probability."""
    return roll <= win_probability


def _percent_of(amount: int, percent: int) -> int:
    return amount * percent // 100


def compute_transfer(
    attack_amount: int,
    defense_amount: int,
    attacker_won: bool,
    policy: LossPolicy,
) -> tuple[int, int]:
    """
    Return (attacker_change, defender_change) under the given policy.
    Gains and losses on a win are percentages of the defense bet; on a loss, of the attack bet.
    """
    if attacker_won:
        return (
            _percent_of(defense_amount, policy.attacker_gain_on_win),
            -_percent_of(defense_amount, policy.defender_loss_on_win),
        )
    return (
        -_percent_of(attack_amount, policy.attacker_loss_on_lose),
        _percent_of(attack_amount, policy.defender_gain_on_lose),
    )


def resolve_combat(
    round_number: int,
    attacker_id: str,
    defender_id: str,
    attack_amount: int,
    defense_amount: int,
    roll: int,
    settings: BattleSettings,
) -> BattleResult | None:
    """
    Resolve a single attack.

    Args:
        round_number: Round the attack belongs to
        attacker_id / defender_id: Team ids
        attack_amount: Attacker's attack bet
        defense_amount: Defender's defense bet
        roll: Draw in 1..DICE_SIDES from the session's random source
        settings: Session settings (probability clamp and loss policy)

    Returns:
        BattleResult, or None when the attack bet is 0 (no combat)
    """
    if attack_amount <= 0:
        return None
    if isinstance(roll, bool) or not isinstance(roll, int) or not 1 <= roll <= DICE_SIDES:
        raise ValidationError(f"Roll must be an integer in 1..{DICE_SIDES}, got {roll!r}")

    win_probability = calculate_win_probability(attack_amount, defense_amount, settings)
    won = attacker_wins(roll, win_probability)
    attacker_change, defender_change = compute_transfer(
        attack_amount, defense_amount, won, settings.policy
    )
    return BattleResult(
        round_number=round_number,
        attacker_id=attacker_id,
        defender_id=defender_id,
        attack_amount=attack_amount,
        defense_amount=defense_amount,
        win_probability=win_probability,
        roll=roll,
        attacker_won=won,
        attacker_change=attacker_change,
        defender_change=defender_change,
    )


def unused_defense_penalty(defense_amount: int, settings: BattleSettings) -> int:
    """Part of an idle defense bet that is forfeited (floor of the configured percent)."""
    return _percent_of(defense_amount, settings.unused_defense_penalty)
