"""
Narrator: template choice is reproducible and never touches the global random state.
"""

import random

from cookie_battle.engine.narrator import (
    NARRATIVES,
    narrate_battle,
    narrate_elimination,
    narrate_members,
    narrate_unused_defense,
    round_header,
)
from cookie_battle.engine.state import BattleResult, UnusedDefense


def _result(won: bool) -> BattleResult:
    return BattleResult(
        round_number=2,
        attacker_id="dragons",
        defender_id="wolves",
        attack_amount=50,
        defense_amount=40,
        win_probability=55.5,
        roll=20 if won else 90,
        attacker_won=won,
        attacker_change=12 if won else -50,
        defender_change=-40 if won else 12,
    )


def test_battle_lines_name_both_teams_and_the_amount():
    won = narrate_battle(_result(True), "🐉 Dragons", "🐺 Wolves")
    lost = narrate_battle(_result(False), "🐉 Dragons", "🐺 Wolves")

    assert "🐉 Dragons" in won and "🐺 Wolves" in won and "12" in won
    assert won in [t.format(attacker="🐉 Dragons", defender="🐺 Wolves", amount=12) for t in NARRATIVES["attack_won"]]
    assert lost in [
        t.format(attacker="🐉 Dragons", defender="🐺 Wolves", loss=50, gain=12)
        for t in NARRATIVES["attack_lost"]
    ]


def test_failed_attack_reports_what_each_side_actually_moved():
    # standard policy: the attacker forfeits 50, the defender only gains 30% of it
    for template in NARRATIVES["attack_lost"]:
        line = template.format(attacker="A", defender="B", loss=50, gain=15)
        if "{gain}" in template:
            assert "15" in line and "50" not in line
        else:
            assert "50" in line and "15" not in line
    assert any("{gain}" in t for t in NARRATIVES["attack_lost"])


def test_member_lines_follow_the_battle():
    names = ["mina", "joon", "seo"]

    lines = narrate_members(_result(True), names)

    assert len(lines) == 2
    assert all(line.startswith("  \u2514 ") for line in lines)
    assert len({n for n in names for line in lines if n in line}) == 2
    assert narrate_members(_result(True), names) == lines
    assert narrate_members(_result(False), ["mina"])[0].count("mina") == 1
    assert narrate_members(_result(True), []) == []


def test_same_event_reads_the_same():
    assert narrate_battle(_result(True), "A", "B") == narrate_battle(_result(True), "A", "B")
    assert narrate_elimination(3, "owls", "Owls") == narrate_elimination(3, "owls", "Owls")


def test_narration_leaves_global_random_alone():
    random.seed(7)
    expected = random.random()

    random.seed(7)
    narrate_battle(_result(True), "A", "B")
    narrate_elimination(1, "b", "B")

    assert random.random() == expected


def test_unused_defense_and_elimination_lines():
    line = narrate_unused_defense(1, UnusedDefense("owls", 40, 20), "🦉 Owls")
    assert "🦉 Owls" in line and "20" in line

    assert "🦉 Owls" in narrate_elimination(1, "owls", "🦉 Owls")
    assert round_header(4) == "===== Round 4 ====="
