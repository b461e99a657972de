"""
Session state representation.
The reducer works on copies; the caller's state is never mutated.
Includes JSON serialization for save/load and for the session document in the database.
"""

import json
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from cookie_battle.engine.definitions import BattleSettings

# "battle" is transient: the reducer passes through it while resolving a round.
SESSION_STATUSES = ("setup", "betting", "targeting", "battle", "result", "finished")


def _int(v: Any, default: int) -> int:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _float(v: Any, default: float) -> float:
    try:
        return float(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _ensure_str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(x) for x in value]
    return []


@dataclass
class Team:
    """A team and its cookie balance. Referenced by id everywhere else."""
    id: str
    name: str
    emblem: str = ""
    resources: int = 0
    start_resources: int = 0  # Balance when the session started (for settlement)
    is_eliminated: bool = False  # One-way
    is_ready: bool = False  # Bet submitted this round
    eliminated_round: int | None = None

    @property
    def label(self) -> str:
        return f"{self.emblem} {self.name}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "emblem": self.emblem,
            "resources": self.resources,
            "start_resources": self.start_resources,
            "is_eliminated": self.is_eliminated,
            "is_ready": self.is_ready,
            "eliminated_round": self.eliminated_round,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Team":
        if not isinstance(data, dict):
            data = {}
        eliminated_round = data.get("eliminated_round")
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or data.get("id") or ""),
            emblem=str(data.get("emblem") or ""),
            resources=max(0, _int(data.get("resources"), 0)),
            start_resources=max(0, _int(data.get("start_resources"), 0)),
            is_eliminated=bool(data.get("is_eliminated", False)),
            is_ready=bool(data.get("is_ready", False)),
            eliminated_round=_int(eliminated_round, 0) if eliminated_round is not None else None,
        )


@dataclass
class BattleBet:
    """One team's bet for the current round. attack_target_id None = no attack."""
    team_id: str
    attack_target_id: str | None
    attack_amount: int
    defense_amount: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "attack_target_id": self.attack_target_id,
            "attack_amount": self.attack_amount,
            "defense_amount": self.defense_amount,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BattleBet":
        if not isinstance(data, dict):
            data = {}
        target = data.get("attack_target_id")
        return cls(
            team_id=str(data.get("team_id") or ""),
            attack_target_id=str(target) if target else None,
            attack_amount=max(0, _int(data.get("attack_amount"), 0)),
            defense_amount=max(0, _int(data.get("defense_amount"), 0)),
        )


@dataclass(frozen=True)
class BattleResult:
    """Outcome of one attacker/defender pair. Changes are signed deltas for each side."""
    round_number: int
    attacker_id: str
    defender_id: str
    attack_amount: int
    defense_amount: int
    win_probability: float  # percent
    roll: int  # 1..DICE_SIDES
    attacker_won: bool
    attacker_change: int
    defender_change: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "attack_amount": self.attack_amount,
            "defense_amount": self.defense_amount,
            "win_probability": self.win_probability,
            "roll": self.roll,
            "attacker_won": self.attacker_won,
            "attacker_change": self.attacker_change,
            "defender_change": self.defender_change,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BattleResult":
        if not isinstance(data, dict):
            data = {}
        return cls(
            round_number=_int(data.get("round_number"), 0),
            attacker_id=str(data.get("attacker_id") or ""),
            defender_id=str(data.get("defender_id") or ""),
            attack_amount=_int(data.get("attack_amount"), 0),
            defense_amount=_int(data.get("defense_amount"), 0),
            win_probability=_float(data.get("win_probability"), 0.0),
            roll=_int(data.get("roll"), 0),
            attacker_won=bool(data.get("attacker_won", False)),
            attacker_change=_int(data.get("attacker_change"), 0),
            defender_change=_int(data.get("defender_change"), 0),
        )


@dataclass(frozen=True)
class UnusedDefense:
    """A defense bet nobody attacked, and the part of it that was forfeited."""
    team_id: str
    defense_amount: int
    penalty: int

    def to_dict(self) -> dict[str, Any]:
        return {"team_id": self.team_id, "defense_amount": self.defense_amount, "penalty": self.penalty}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnusedDefense":
        if not isinstance(data, dict):
            data = {}
        return cls(
            team_id=str(data.get("team_id") or ""),
            defense_amount=_int(data.get("defense_amount"), 0),
            penalty=_int(data.get("penalty"), 0),
        )


@dataclass
class RoundRecord:
    """Everything a resolved round produced."""
    round_number: int
    battles: list[BattleResult] = field(default_factory=list)
    unused_defense: list[UnusedDefense] = field(default_factory=list)
    # team_id -> net change actually applied to the ledger (after the floor at 0)
    deltas: dict[str, int] = field(default_factory=dict)
    eliminated: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "battles": [b.to_dict() for b in self.battles],
            "unused_defense": [u.to_dict() for u in self.unused_defense],
            "deltas": dict(self.deltas),
            "eliminated": list(self.eliminated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoundRecord":
        if not isinstance(data, dict):
            data = {}
        battles = data.get("battles")
        unused = data.get("unused_defense")
        deltas = data.get("deltas")
        return cls(
            round_number=_int(data.get("round_number"), 0),
            battles=[BattleResult.from_dict(b) for b in battles if isinstance(b, dict)]
            if isinstance(battles, list) else [],
            unused_defense=[UnusedDefense.from_dict(u) for u in unused if isinstance(u, dict)]
            if isinstance(unused, list) else [],
            deltas={str(k): _int(v, 0) for k, v in deltas.items()} if isinstance(deltas, dict) else {},
            eliminated=_ensure_str_list(data.get("eliminated")),
        )


@dataclass
class Settlement:
    """Final standing of one team."""
    team_id: str
    team_name: str
    start_resources: int
    final_resources: int
    net_change: int
    total_wins: int
    total_losses: int
    resources_won: int
    resources_lost: int
    defense_penalty: int
    is_eliminated: bool
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "start_resources": self.start_resources,
            "final_resources": self.final_resources,
            "net_change": self.net_change,
            "total_wins": self.total_wins,
            "total_losses": self.total_losses,
            "resources_won": self.resources_won,
            "resources_lost": self.resources_lost,
            "defense_penalty": self.defense_penalty,
            "is_eliminated": self.is_eliminated,
            "rank": self.rank,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settlement":
        if not isinstance(data, dict):
            data = {}
        return cls(
            team_id=str(data.get("team_id") or ""),
            team_name=str(data.get("team_name") or ""),
            start_resources=_int(data.get("start_resources"), 0),
            final_resources=_int(data.get("final_resources"), 0),
            net_change=_int(data.get("net_change"), 0),
            total_wins=_int(data.get("total_wins"), 0),
            total_losses=_int(data.get("total_losses"), 0),
            resources_won=_int(data.get("resources_won"), 0),
            resources_lost=_int(data.get("resources_lost"), 0),
            defense_penalty=_int(data.get("defense_penalty"), 0),
            is_eliminated=bool(data.get("is_eliminated", False)),
            rank=_int(data.get("rank"), 0),
        )


@dataclass
class SessionState:
    """Complete state of one battle session."""
    status: str  # see SESSION_STATUSES
    round_number: int
    settings: BattleSettings
    # team_id -> Team, in display/turn order
    teams: dict[str, Team]
    # Bet registry for the current round: team_id -> BattleBet
    bets: dict[str, BattleBet] = field(default_factory=dict)
    rounds: list[RoundRecord] = field(default_factory=list)
    # Narrated log, append-only
    battle_log: list[str] = field(default_factory=list)
    settlements: list[Settlement] = field(default_factory=list)
    # "elimination", "round_limit" or "operator" once finished
    ended_by: str | None = None
    # Sole rank-1 team once finished (None on a tie)
    winner: str | None = None

    @property
    def results(self) -> list[BattleResult]:
        """All battle results of the session, in resolution order."""
        return [b for r in self.rounds for b in r.battles]

    def copy(self) -> "SessionState":
        """Return a deep copy of this session state."""
        return deepcopy(self)

    def get_round(self, round_number: int) -> RoundRecord | None:
        for record in self.rounds:
            if record.round_number == round_number:
                return record
        return None

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert SessionState to a dictionary for JSON serialization."""
        return {
            "status": self.status,
            "round_number": self.round_number,
            "settings": self.settings.to_dict(),
            "teams": {tid: t.to_dict() for tid, t in self.teams.items()},
            "bets": {tid: b.to_dict() for tid, b in self.bets.items()},
            "rounds": [r.to_dict() for r in self.rounds],
            "battle_log": list(self.battle_log),
            "settlements": [s.to_dict() for s in self.settlements],
            "ended_by": self.ended_by,
            "winner": self.winner,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """Create SessionState from a dictionary (handles missing/None fields)."""
        if not isinstance(data, dict):
            data = {}
        teams_data = data.get("teams") or {}
        if not isinstance(teams_data, dict):
            teams_data = {}
        bets_data = data.get("bets") or {}
        if not isinstance(bets_data, dict):
            bets_data = {}
        rounds_data = data.get("rounds") or []
        if not isinstance(rounds_data, list):
            rounds_data = []
        settlements_data = data.get("settlements") or []
        if not isinstance(settlements_data, list):
            settlements_data = []
        status = str(data.get("status") or "setup")
        if status not in SESSION_STATUSES:
            status = "setup"
        teams = {}
        for tid, td in teams_data.items():
            if isinstance(td, dict):
                team = Team.from_dict({**td, "id": td.get("id") or tid})
                teams[team.id] = team
        return cls(
            status=status,
            round_number=_int(data.get("round_number"), 0),
            settings=BattleSettings.from_dict(data.get("settings")),
            teams=teams,
            bets={
                str(tid): BattleBet.from_dict({**bd, "team_id": bd.get("team_id") or tid})
                for tid, bd in bets_data.items()
                if isinstance(bd, dict)
            },
            rounds=[RoundRecord.from_dict(r) for r in rounds_data if isinstance(r, dict)],
            battle_log=_ensure_str_list(data.get("battle_log")),
            settlements=[Settlement.from_dict(s) for s in settlements_data if isinstance(s, dict)],
            ended_by=data.get("ended_by") if isinstance(data.get("ended_by"), str) else None,
            winner=data.get("winner") if isinstance(data.get("winner"), str) else None,
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize SessionState to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, json_str: str) -> "SessionState":
        """Deserialize SessionState from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    def save(self, filepath: str) -> None:
        """Save SessionState to a JSON file."""
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, filepath: str) -> "SessionState":
        """Load SessionState from a JSON file."""
        with open(filepath, "r", encoding="utf-8") as f:
            return cls.from_json(f.read())
