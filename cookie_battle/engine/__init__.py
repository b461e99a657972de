"""
Team Battle Economy Engine
Core engine without web framework, database, or UI
"""

# Combat outcome is one integer draw in 1..DICE_SIDES; the attacker wins if roll <= win probability (percent).
DICE_SIDES = 100

# Actor id used for operator actions (teams act with their own team id).
OPERATOR = "operator"
