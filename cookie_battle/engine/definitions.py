"""
Static definitions: loss policies and per-session battle settings.
Loss policies live in data/loss_policies.json (policy_id -> percentages).
A session stores a snapshot of its settings (policy included) so it always plays with
the numbers it was created with.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from cookie_battle.engine.errors import ValidationError

DATA_DIR = Path(__file__).parent.parent / "data"
LOSS_POLICIES_PATH = DATA_DIR / "loss_policies.json"

# Names used by older session documents
LOSS_POLICY_ALIASES = {
    "basic": "standard",
    "zeroSum": "zero_sum",
    "zero-sum": "zero_sum",
    "gentle": "soft",
}

_PERCENT_FIELDS = (
    "attacker_gain_on_win",
    "defender_loss_on_win",
    "attacker_loss_on_lose",
    "defender_gain_on_lose",
)


def _default(name: str) -> Any:
    """Single place for defaults: cookie_battle.config."""
    from cookie_battle import config
    return getattr(config, name)


@dataclass(frozen=True)
class LossPolicy:
    """
    Percent table for resource transfer.
    On attacker win: attacker gains attacker_gain_on_win% of the defense bet,
    defender loses defender_loss_on_win% of it.
    On attacker loss: attacker loses attacker_loss_on_lose% of the attack bet,
    defender gains defender_gain_on_lose% of it.
    """
    id: str
    display_name: str
    attacker_gain_on_win: int
    defender_loss_on_win: int
    attacker_loss_on_lose: int
    defender_gain_on_lose: int
    description: str = ""

    def validate(self) -> None:
        for name in _PERCENT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
                raise ValidationError(f"Loss policy {self.id!r}: {name} must be an integer percent 0-100, got {value!r}")
        # Net resources of a pair may not grow
        if self.attacker_gain_on_win > self.defender_loss_on_win:
            raise ValidationError(f"Loss policy {self.id!r}: attacker gain on win exceeds defender loss")
        if self.defender_gain_on_lose > self.attacker_loss_on_lose:
            raise ValidationError(f"Loss policy {self.id!r}: defender gain on lose exceeds attacker loss")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LossPolicy":
        policy = cls(
            id=str(data["id"]),
            display_name=str(data.get("display_name") or data["id"]),
            attacker_gain_on_win=data["attacker_gain_on_win"],
            defender_loss_on_win=data["defender_loss_on_win"],
            attacker_loss_on_lose=data["attacker_loss_on_lose"],
            defender_gain_on_lose=data["defender_gain_on_lose"],
            description=str(data.get("description") or ""),
        )
        policy.validate()
        return policy


def load_loss_policies(path: Path | str | None = None) -> dict[str, LossPolicy]:
    """Load the policy table (policy_id -> LossPolicy) from JSON."""
    path = Path(path) if path is not None else LOSS_POLICIES_PATH
    with open(path, "r") as f:
        raw = json.load(f)
    policies = {}
    for policy_id, data in raw.items():
        data = dict(data)
        data.setdefault("id", policy_id)
        policies[policy_id] = LossPolicy.from_dict(data)
    return policies


def resolve_loss_mechanism(name: str) -> str:
    """Map legacy policy names to canonical ids."""
    return LOSS_POLICY_ALIASES.get(name, name)


def get_loss_policy(name: str, policies: dict[str, LossPolicy] | None = None) -> LossPolicy:
    policies = policies if policies is not None else load_loss_policies()
    policy_id = resolve_loss_mechanism(name)
    if policy_id not in policies:
        raise ValidationError(
            f"Unknown loss mechanism {name!r}. Known: {', '.join(sorted(policies))}"
        )
    return policies[policy_id]


def list_loss_policies() -> list[dict[str, Any]]:
    """Return [{ id, display_name, description, percentages... }, ...] for the HTTP layer."""
    return [p.to_dict() for p in load_loss_policies().values()]


@dataclass
class BattleSettings:
    """Configuration passed at session setup; lives as long as the session."""
    initial_resources: int = field(default_factory=lambda: _default("DEFAULT_INITIAL_RESOURCES"))
    round_limit: int = field(default_factory=lambda: _default("DEFAULT_ROUND_LIMIT"))  # 0 = unlimited
    loss_mechanism: str = field(default_factory=lambda: _default("DEFAULT_LOSS_MECHANISM"))
    min_win_probability: float = field(default_factory=lambda: _default("DEFAULT_MIN_WIN_PROBABILITY"))
    max_win_probability: float = field(default_factory=lambda: _default("DEFAULT_MAX_WIN_PROBABILITY"))
    unused_defense_penalty: int = field(default_factory=lambda: _default("DEFAULT_UNUSED_DEFENSE_PENALTY"))
    # Resolved from loss_mechanism when not given
    policy: LossPolicy | None = None

    def __post_init__(self) -> None:
        self.loss_mechanism = resolve_loss_mechanism(self.loss_mechanism)
        if self.policy is None:
            self.policy = get_loss_policy(self.loss_mechanism)

    def validate(self) -> None:
        """Raise ValidationError if any option is out of range."""
        for name in ("initial_resources", "round_limit", "unused_defense_penalty"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")
        if self.unused_defense_penalty > 100:
            raise ValidationError("unused_defense_penalty must be at most 100 percent")
        lo, hi = self.min_win_probability, self.max_win_probability
        if not (0 <= lo <= hi <= 100):
            raise ValidationError(
                f"Win probability bounds must satisfy 0 <= min <= max <= 100, got {lo}..{hi}"
            )
        if self.policy is None or self.policy.id != self.loss_mechanism:
            raise ValidationError(f"Loss policy does not match loss mechanism {self.loss_mechanism!r}")
        self.policy.validate()

    def to_dict(self) -> dict[str, Any]:
        return {
            "initial_resources": self.initial_resources,
            "round_limit": self.round_limit,
            "loss_mechanism": self.loss_mechanism,
            "min_win_probability": self.min_win_probability,
            "max_win_probability": self.max_win_probability,
            "unused_defense_penalty": self.unused_defense_penalty,
            "policy": self.policy.to_dict() if self.policy else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BattleSettings":
        """Build settings from a snapshot or request body; missing keys fall back to defaults."""
        if not isinstance(data, dict):
            data = {}
        kwargs: dict[str, Any] = {}
        for name in (
            "initial_resources",
            "round_limit",
            "loss_mechanism",
            "min_win_probability",
            "max_win_probability",
            "unused_defense_penalty",
        ):
            if data.get(name) is not None:
                kwargs[name] = data[name]
        policy_data = data.get("policy")
        if isinstance(policy_data, dict):
            kwargs["policy"] = LossPolicy.from_dict(policy_data)
            kwargs.setdefault("loss_mechanism", kwargs["policy"].id)
        return cls(**kwargs)
