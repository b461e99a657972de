"""
Single place for default session configuration.
A session gets its own BattleSettings at setup; these values only fill in what the operator leaves out.
"""
# Policy id from data/loss_policies.json ("standard", "zero_sum", "soft").
DEFAULT_LOSS_MECHANISM = "standard"

# Cookies each team starts with when the operator does not give an amount.
DEFAULT_INITIAL_RESOURCES = 100

# 0 = no round limit; the session ends when one team (or none) is left.
DEFAULT_ROUND_LIMIT = 0

# Win probability clamp, in percent.
DEFAULT_MIN_WIN_PROBABILITY = 10
DEFAULT_MAX_WIN_PROBABILITY = 90

# Percent of an idle defense bet that is forfeited when nobody attacks the team.
DEFAULT_UNUSED_DEFENSE_PENALTY = 50
