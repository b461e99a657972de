"""
Database setup for Cookie Battle.
Sessions live in one row each (battle_sessions); a round is persisted as a single row update.
SQLite by default; DATABASE_URL (e.g. Heroku Postgres) overrides it.
"""

import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker


def _database_url() -> str:
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        db_dir = os.path.dirname(os.path.abspath(__file__))
        return f"sqlite:///{os.path.join(db_dir, 'cookie_battle.db')}"
    # Heroku still hands out postgres://; SQLAlchemy 2.x only knows postgresql://
    if raw.startswith("postgres://"):
        return raw.replace("postgres://", "postgresql://", 1)
    return raw


DATABASE_URL = _database_url()
IS_SQLITE = DATABASE_URL.startswith("sqlite")

# Request handlers run in a threadpool; SQLite connections must be shareable across threads
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one DB session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """DB session for scripts: commits on success, rolls back on any error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create players and battle_sessions if missing."""
    Base.metadata.create_all(bind=engine)


def get_db_file_path() -> str | None:
    """Path of the SQLite file in use (None for other databases). Lets scripts confirm they hit the API's DB."""
    if not DATABASE_URL.startswith("sqlite:///"):
        return None
    return os.path.abspath(DATABASE_URL[len("sqlite:///"):])
