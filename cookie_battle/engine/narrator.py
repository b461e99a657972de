"""
Battle narration.
Turns combat results into short medieval-flavoured log lines. The template is picked with a
random.Random seeded from the event itself, so the same round always reads the same way and
narration never draws from the combat dice.
"""

import random

from cookie_battle.engine.state import BattleResult, UnusedDefense

# Player lines narrated under each battle
MEMBER_LINES = 2

NARRATIVES: dict[str, list[str]] = {
    "attack_won": [
        "{attacker}'s knights breached the walls of {defender}! {amount} cookies plundered!",
        "{attacker} caught {defender} off guard and won big! {amount} cookies of loot!",
        "{attacker}'s catapult hit {defender}'s storehouse! {amount} cookies seized!",
        "Valiant {attacker}! {defender} is brought to its knees. {amount} cookies taken!",
        "{attacker}'s raid succeeded! {amount} cookies secured from {defender}!",
        "{defender}'s defense crumbled! {attacker} ran off with {amount} cookies!",
        "{attacker}'s siege was a triumph! {defender} has fallen, {amount} cookies!",
        "A legend is born! {attacker} routed {defender}! +{amount} cookies!",
    ],
    "attack_lost": [
        "{attacker}'s assault broke on {defender}'s iron defense! {loss} cookies lost!",
        "{attacker} walked into {defender}'s trap! {loss} cookies gone!",
        "{attacker}'s reckless charge... {defender} picked up {gain} cookies!",
        "Poor {attacker}! {defender}'s counterattack cost {loss} cookies!",
        "{defender}'s castle held firm! {attacker} retreats, -{loss} cookies!",
        "{attacker}'s plan failed! {defender}'s archers collected {gain} cookies!",
        "Proud {attacker} kneels before {defender}, who pockets {gain} cookies!",
        "{attacker}'s knights got lost! {defender} captured {gain} cookies!",
    ],
    "elimination": [
        "{team} is ruined and heads back home...",
        "{team}'s treasury is empty! The kingdom has fallen!",
        "{team}'s last cookie is gone... into the history books...",
        "Farewell, {team}! See you next season!",
        "{team}'s castle lies in ruins. Eliminated!",
        "All of {team}'s people have left. Game over!",
        "The legend ends here! {team}'s adventure is over.",
        "{team}: 'Next time for sure...!' (exits)",
    ],
    "unused_defense": [
        "{team} put {amount} cookies on defense but nobody attacked! {penalty} cookies forfeited!",
        "{team}'s mighty wall... and nobody came! {penalty} cookies lost to upkeep!",
        "Lonely castle of {team}... no attackers! {penalty} cookies spent for nothing!",
    ],
    "member_action": [
        "{name} fired arrows from the walls!",
        "{name} launched the catapult!",
        "{name} led the charge from the front!",
        "{name} spotted the enemy's trap!",
        "{name} fought bravely!",
        "{name} blocked an enemy arrow!",
        "{name} held the castle gate!",
        "{name} came up with a clever tactic!",
        "{name} guarded the cookie storehouse!",
        "{name} defeated the enemy captain!",
    ],
    "member_fail": [
        "{name} reached for a cookie and got hit by an arrow!",
        "{name} slipped off the castle wall!",
        "{name} fell into the enemy's trap!",
        "{name} was caught running off with cookies!",
        "{name} got lost and is wandering around!",
        "{name} was hit by a stone and dropped the cookies!",
    ],
}


def narration_rng(*parts) -> random.Random:
    """Deterministic generator for one narrated event."""
    return random.Random(":".join(str(p) for p in parts))


def _render(category: str, rng: random.Random, **params) -> str:
    template = rng.choice(NARRATIVES[category])
    return template.format(**params)


def round_header(round_number: int) -> str:
    return f"===== Round {round_number} ====="


def narrate_battle(result: BattleResult, attacker_label: str, defender_label: str) -> str:
    """
    One line for an attack.
    A won attack reports the attacker's loot; a failed one reports the attacker's loss and
    the defender's gain separately, since a policy may not move the whole bet.
    """
    rng = narration_rng(result.round_number, result.attacker_id, result.defender_id)
    if result.attacker_won:
        return _render(
            "attack_won",
            rng,
            attacker=attacker_label,
            defender=defender_label,
            amount=result.attacker_change,
        )
    return _render(
        "attack_lost",
        rng,
        attacker=attacker_label,
        defender=defender_label,
        loss=-result.attacker_change,
        gain=result.defender_change,
    )


def narrate_members(result: BattleResult, names: list[str]) -> list[str]:
    """
    Up to MEMBER_LINES lines about the attacking team's players, indented under the battle line.
    After a won attack everyone did well; after a lost one each player may have slipped up.
    """
    if not names:
        return []
    rng = narration_rng(result.round_number, "members", result.attacker_id, result.defender_id)
    picked = rng.sample(sorted(names), min(MEMBER_LINES, len(names)))
    lines = []
    for name in picked:
        if result.attacker_won or rng.random() < 0.5:
            category = "member_action"
        else:
            category = "member_fail"
        lines.append("  \u2514 " + _render(category, rng, name=name))
    return lines


def narrate_unused_defense(
    round_number: int,
    unused: UnusedDefense,
    team_label: str,
) -> str:
    rng = narration_rng(round_number, "unused", unused.team_id)
    return _render(
        "unused_defense",
        rng,
        team=team_label,
        amount=unused.defense_amount,
        penalty=unused.penalty,
    )


def narrate_elimination(round_number: int, team_id: str, team_label: str) -> str:
    rng = narration_rng(round_number, "elimination", team_id)
    return _render("elimination", rng, team=team_label)
