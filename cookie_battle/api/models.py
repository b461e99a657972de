"""
SQLAlchemy models for players and battle sessions.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey

from .database import Base


class Player(Base):
    __tablename__ = "players"

    id = Column(String(36), primary_key=True)  # uuid
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)  # display name, no spaces/special
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class BattleSession(Base):
    __tablename__ = "battle_sessions"

    id = Column(String(36), primary_key=True)  # uuid
    name = Column(String(128), nullable=False)  # operator-defined session name
    game_code = Column(String(8), unique=True, nullable=False, index=True)  # 4-char alphanumeric teams join with
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(36), ForeignKey("players.id"), nullable=False)  # operator player_id
    status = Column(String(32), nullable=False, default="setup")  # mirrors SessionState.status
    session_state = Column(Text, nullable=False)  # JSON string of full session state
    players = Column(Text, nullable=False)  # JSON array of { "player_id": str, "team_id": str | null, "role": "operator" | "team" }
    config = Column(Text, nullable=True)  # JSON snapshot of BattleSettings at creation
