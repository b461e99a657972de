"""
Who is calling, and what they may do in a battle session.

Accounts: bcrypt password hashes (at most 72 bytes are hashed) and JWT bearer tokens.
Sessions: the players column of a battle session lists its members as
{ "player_id", "username", "team_id", "role", "representative" }. The creator is the operator;
everyone else joins one team, and one member per team is its representative, the only
player allowed to bet and target for the team.
"""

import json
import os
import re
from datetime import datetime, timedelta

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from cookie_battle.engine.errors import NotFoundError

from .database import get_db
from .models import BattleSession, Player

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{2,32}$")

SECRET_KEY = os.environ.get("JWT_SECRET", "change-me-in-production-use-env")
ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(days=30)
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "10"))

ROLE_OPERATOR = "operator"
ROLE_TEAM = "team"

bearer = HTTPBearer(auto_error=False)


# ===== Accounts =====

def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(_password_bytes(plain), hashed.encode("ascii"))


def validate_username(username: str) -> bool:
    return bool(USERNAME_PATTERN.match(username))


def create_access_token(player_id: str) -> str:
    claims = {"sub": player_id, "exp": datetime.utcnow() + TOKEN_LIFETIME}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def _token_player(credentials: HTTPAuthorizationCredentials | None, db: Session) -> tuple[Player | None, str]:
    """(player, reason): player is None when the bearer token is missing, bad or orphaned."""
    if not credentials:
        return None, "Not authenticated"
    try:
        player_id = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM]).get("sub")
    except JWTError:
        player_id = None
    if not player_id:
        return None, "Invalid or expired token"
    player = db.query(Player).filter(Player.id == player_id).first()
    return player, "Player not found"


def get_current_player(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Player:
    player, reason = _token_player(credentials, db)
    if player is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=reason,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return player


def get_current_player_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Player | None:
    return _token_player(credentials, db)[0]


# ===== Session membership =====

def load_members(row: BattleSession) -> list[dict]:
    """players column as a list; malformed JSON reads as no members."""
    try:
        members = json.loads(row.players) if isinstance(row.players, str) else row.players
    except (TypeError, json.JSONDecodeError):
        return []
    return [m for m in members if isinstance(m, dict)] if isinstance(members, list) else []


def store_members(row: BattleSession, members: list[dict]) -> None:
    row.players = json.dumps(members)


def membership(row: BattleSession, player: Player | None) -> dict | None:
    """This player's entry in the session, if any."""
    if player is None:
        return None
    for member in load_members(row):
        if str(member.get("player_id")) == str(player.id):
            return member
    return None


def is_operator(row: BattleSession, player: Player | None) -> bool:
    member = membership(row, player)
    return member is not None and member.get("role") == ROLE_OPERATOR


def require_operator(row: BattleSession, player: Player) -> None:
    """Raise 403 unless the player runs this session."""
    if not is_operator(row, player):
        raise HTTPException(status_code=403, detail="Only the session operator can do this")


# ===== Team representatives =====

def team_members(members: list[dict], team_id: str) -> list[dict]:
    """Members of one team, in the order they joined."""
    return [m for m in members if m.get("role") == ROLE_TEAM and m.get("team_id") == team_id]


def representatives(members: list[dict]) -> dict[str, str]:
    """team_id -> player_id of its representative."""
    return {
        m["team_id"]: str(m.get("player_id"))
        for m in members
        if m.get("role") == ROLE_TEAM and m.get("representative") and m.get("team_id")
    }


def member_names(members: list[dict]) -> dict[str, list[str]]:
    """team_id -> usernames of its members, for battle narration."""
    names: dict[str, list[str]] = {}
    for m in members:
        if m.get("role") == ROLE_TEAM and m.get("team_id") and m.get("username"):
            names.setdefault(m["team_id"], []).append(str(m["username"]))
    return names


def set_representative(members: list[dict], team_id: str, player_id: str) -> None:
    """Make player_id the representative of team_id. The player must have joined that team."""
    team = team_members(members, team_id)
    if not any(str(m.get("player_id")) == str(player_id) for m in team):
        raise NotFoundError(f"Player {player_id} is not a member of team {team_id}")
    for m in team:
        m["representative"] = str(m.get("player_id")) == str(player_id)


def auto_assign_representatives(members: list[dict], team_ids: list[str]) -> dict[str, str]:
    """
    Give every listed team without a representative its first member.
    Returns the assignments made (team_id -> player_id); teams nobody joined are skipped.
    """
    current = representatives(members)
    assigned = {}
    for team_id in team_ids:
        if team_id in current:
            continue
        team = team_members(members, team_id)
        if not team:
            continue
        team[0]["representative"] = True
        assigned[team_id] = str(team[0].get("player_id"))
    return assigned


def require_team_representative(row: BattleSession, player: Player, team_id: str) -> None:
    """
    Raise 403 unless the player is the representative of team_id.
    The operator may act for any team (hot-seat play from one screen).
    """
    member = membership(row, player)
    if member is None:
        raise HTTPException(status_code=403, detail="Not in this session")
    if member.get("role") == ROLE_OPERATOR:
        return
    if str(member.get("team_id")) != str(team_id):
        raise HTTPException(status_code=403, detail=f"Not a member of team {team_id}")
    if not member.get("representative"):
        raise HTTPException(status_code=403, detail=f"Only the representative of team {team_id} can do this")
