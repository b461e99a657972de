"""
FastAPI backend for Cookie Battle.
Provides REST API endpoints for battle session management and round actions.
"""

import json
import logging
import secrets
import string
import threading
import traceback
import uuid
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import get_db, init_db
from .models import BattleSession as SessionModel, Player
from .auth import (
    ROLE_OPERATOR,
    ROLE_TEAM,
    auto_assign_representatives,
    create_access_token,
    get_current_player,
    get_current_player_optional,
    hash_password,
    load_members,
    member_names,
    membership,
    representatives,
    require_operator,
    require_team_representative,
    set_representative,
    store_members,
    validate_username,
    verify_password,
)

from cookie_battle.engine.actions import (
    Action,
    adjust_resources,
    advance_round,
    end_session,
    resolve_battle,
    start_session,
    start_targeting,
    submit_bet,
    submit_target,
)
from cookie_battle.engine.definitions import BattleSettings, list_loss_policies
from cookie_battle.engine.errors import (
    GameError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from cookie_battle.engine.feed import SessionFeed
from cookie_battle.engine.queries import (
    get_attack_pairs,
    get_available_action_types,
    get_pending_teams,
    get_round_results,
    get_session_summary,
    get_target_options,
    get_team_standings,
)
from cookie_battle.engine.reducer import apply_action
from cookie_battle.engine.state import SessionState
from cookie_battle.engine.utils import RandomSource, initialize_game_state, roll_battle_dice

LOGGER = logging.getLogger(__name__)

app = FastAPI(
    title="Cookie Battle API",
    description="Backend API for Cookie Battle - a team betting and battle game",
    version="1.0.0",
)

# CORS configuration for frontend
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:5174", "http://localhost:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


class PersistenceError(GameError):
    """The session document could not be written; the computed state is kept as a pending save."""


ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    IllegalTransitionError: 409,
    PersistenceError: 503,
}


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path so 5xx responses can be traced to the failing endpoint."""
    method = getattr(request, "method", "?")
    url = getattr(request, "url", None)
    path = url.path if url else "?"
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            LOGGER.error("[%s] %s %s", response.status_code, method, path)
        return response
    except Exception:
        LOGGER.exception("[500] %s %s (exception)", method, path)
        raise


@app.exception_handler(GameError)
async def game_error_handler(request, exc: GameError):
    """Engine errors carry their own HTTP status (see ERROR_STATUS)."""
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        400,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    """Return 500 with CORS headers and full traceback so the frontend can read the error."""
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    LOGGER.error("Unhandled error: %s", tb)
    origin = request.headers.get("origin")
    allow_origin = origin if origin in CORS_ORIGINS else CORS_ORIGINS[0]
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "traceback": tb},
        headers={
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Credentials": "true",
        },
    )


# In-memory cache of loaded session state (also persisted in DB)
sessions: dict[str, SessionState] = {}

# Computed states whose DB write failed; key = session_id. Written by /retry-save or the next mutating call.
pending_saves: dict[str, SessionState] = {}

# One feed per session for watchers (UI push, CLI)
feeds: dict[str, SessionFeed] = {}

# Single writer per session
_session_locks: dict[str, threading.Lock] = {}
_session_locks_guard = threading.Lock()

# Alphanumeric for game codes (uppercase + digits)
GAME_CODE_CHARS = string.ascii_uppercase + string.digits
GAME_CODE_LENGTH = 4


# ===== Pydantic Models =====

class RegisterRequest(BaseModel):
    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class TeamRequest(BaseModel):
    name: str
    emblem: str = ""
    id: str | None = None
    """Starting cookies; omitted = settings.initial_resources."""
    resources: int | None = None


class SettingsRequest(BaseModel):
    initial_resources: int | None = None
    round_limit: int | None = None
    """Policy id from GET /loss-policies (legacy names accepted)."""
    loss_mechanism: str | None = None
    min_win_probability: float | None = None
    max_win_probability: float | None = None
    unused_defense_penalty: int | None = None


class CreateSessionRequest(BaseModel):
    name: str
    teams: list[TeamRequest] = Field(default_factory=list)
    settings: SettingsRequest | None = None


class JoinSessionRequest(BaseModel):
    game_code: str
    team_id: str


class BetRequest(BaseModel):
    team_id: str
    attack_amount: int
    defense_amount: int


class TargetRequest(BaseModel):
    team_id: str
    target_id: str | None = None


class AdjustRequest(BaseModel):
    team_id: str
    delta: int
    reason: str = ""


class EndSessionRequest(BaseModel):
    reason: str = "operator"


class RepresentativeRequest(BaseModel):
    team_id: str
    player_id: str


# ===== Dependencies =====

def get_random_source() -> RandomSource:
    """Dice for /battle. Overridden in tests with a fixed or seeded source."""
    return RandomSource()


# ===== Helper Functions =====

def generate_game_code(db: Session) -> str:
    """Generate a unique 4-char alphanumeric game code."""
    for _ in range(20):
        code = "".join(secrets.choice(GAME_CODE_CHARS) for _ in range(GAME_CODE_LENGTH))
        if db.query(SessionModel).filter(SessionModel.game_code == code).first() is None:
            return code
    raise HTTPException(status_code=500, detail="Could not generate unique game code")


def session_lock(session_id: str) -> threading.Lock:
    with _session_locks_guard:
        lock = _session_locks.get(session_id)
        if lock is None:
            lock = _session_locks[session_id] = threading.Lock()
        return lock


def get_feed(session_id: str, state: SessionState | None = None) -> SessionFeed:
    """Feed for a session, created from state (or an empty session) on first use."""
    feed = feeds.get(session_id)
    if feed is None:
        initial = state if state is not None else SessionState.from_dict({})
        feed = feeds[session_id] = SessionFeed(initial)
    return feed


def get_session_row(session_id: str, db: Session) -> SessionModel:
    row = db.query(SessionModel).filter(SessionModel.id == session_id).first()
    if not row:
        raise NotFoundError(f"Session {session_id} not found")
    return row


def get_session(session_id: str, db: Session | None = None) -> SessionState:
    """Get session state from DB (always fresh when db provided); a pending save wins over the DB copy."""
    if session_id in pending_saves:
        return pending_saves[session_id]
    if db is None:
        if session_id in sessions:
            return sessions[session_id]
        db = next(get_db())
    row = get_session_row(session_id, db)
    try:
        raw = json.loads(row.session_state) if isinstance(row.session_state, str) else row.session_state
    except (TypeError, json.JSONDecodeError):
        raise NotFoundError(f"Session {session_id} has a corrupt state document")
    state = SessionState.from_dict(raw if isinstance(raw, dict) else {})
    sessions[session_id] = state
    return state


def _commit(db: Session) -> None:
    db.commit()


def save_session(session_id: str, state: SessionState, db: Session) -> None:
    """
    Persist the whole session document in one row update.
    On failure the state is kept in pending_saves and PersistenceError is raised.
    """
    try:
        row = get_session_row(session_id, db)
        row.session_state = state.to_json(indent=None)
        row.status = state.status
        _commit(db)
    except SQLAlchemyError as e:
        db.rollback()
        pending_saves[session_id] = state
        LOGGER.warning("Saving session %s failed, keeping it pending: %s", session_id, e)
        raise PersistenceError(f"Could not save session {session_id}; retry with /retry-save") from e
    pending_saves.pop(session_id, None)
    sessions[session_id] = state
    get_feed(session_id, state).publish(state)


def _flush_pending(session_id: str, db: Session) -> None:
    """Write a pending state before anything else touches the session."""
    pending = pending_saves.get(session_id)
    if pending is not None:
        save_session(session_id, pending, db)


def state_for_response(state: SessionState) -> dict[str, Any]:
    """State dict plus computed standings and summary for the UI."""
    out = state.to_dict()
    out["standings"] = get_team_standings(state)
    out["summary"] = get_session_summary(state)
    return out


def _apply(
    session_id: str,
    action: Action | Callable[[SessionState], Action],
    db: Session,
    extra: dict[str, Any] | Callable[[SessionState], dict[str, Any]] | None = None,
):
    """
    Apply one action under the session lock and persist the result.
    action may be a function of the current state (e.g. to roll dice for its attacks).
    Returns the response body; a failed write answers 503 with the computed result.
    """
    with session_lock(session_id):
        _flush_pending(session_id, db)
        state = get_session(session_id, db)
        if callable(action):
            action = action(state)
        new_state, events = apply_action(state, action)
        body = {
            "session_id": session_id,
            "state": state_for_response(new_state),
            "events": [e.to_dict() for e in events],
        }
        if extra:
            body.update(extra(new_state) if callable(extra) else extra)
        try:
            save_session(session_id, new_state, db)
        except PersistenceError as e:
            return JSONResponse(status_code=503, content={"detail": str(e), "pending_save": True, **body})
        return body


def _require_operator_for(session_id: str, player: Player, db: Session) -> SessionModel:
    row = get_session_row(session_id, db)
    require_operator(row, player)
    return row


@app.on_event("startup")
def on_startup():
    init_db()


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Cookie Battle API", "version": "1.0.0"}


# ----- Auth -----

@app.post("/auth/register")
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register with email, username (unique, no spaces/special), and password."""
    if not validate_username(request.username):
        raise HTTPException(
            status_code=400,
            detail="Username must be 2–32 characters, letters numbers and underscore only",
        )
    if db.query(Player).filter(Player.email == request.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if db.query(Player).filter(Player.username == request.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")
    try:
        player_id = str(uuid.uuid4())
        player = Player(
            id=player_id,
            email=request.email,
            username=request.username,
            password_hash=hash_password(request.password),
        )
        db.add(player)
        db.commit()
        token = create_access_token(player_id)
        return {"access_token": token, "player": {"id": player_id, "email": player.email, "username": player.username}}
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Registration failed: {str(e)}")


@app.post("/auth/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password."""
    player = db.query(Player).filter(Player.email == request.email).first()
    if not player or not verify_password(request.password, player.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_access_token(player.id)
    return {"access_token": token, "player": {"id": player.id, "email": player.email, "username": player.username}}


@app.get("/auth/me")
def auth_me(player: Player = Depends(get_current_player)):
    """Return current player (email, username; password not included)."""
    return {"id": player.id, "email": player.email, "username": player.username}


# ----- Sessions (create, list, join) -----

@app.get("/loss-policies")
def get_loss_policies():
    """List loss mechanisms (id, display_name, percentages). Use the id as settings.loss_mechanism."""
    return {"policies": list_loss_policies()}


@app.post("/sessions/create")
def create_session(
    request: CreateSessionRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Create a session in setup. The creator is its operator. Returns session_id and game_code."""
    if len(request.teams) < 2:
        raise ValidationError("A session needs at least two teams")
    settings_data = request.settings.model_dump(exclude_none=True) if request.settings else {}
    settings = BattleSettings.from_dict(settings_data)
    state = initialize_game_state(
        [t.model_dump(exclude_none=True) for t in request.teams],
        settings,
    )
    session_id = str(uuid.uuid4())
    game_code = generate_game_code(db)
    players_list = [{
        "player_id": str(player.id),
        "username": player.username,
        "team_id": None,
        "role": ROLE_OPERATOR,
    }]
    row = SessionModel(
        id=session_id,
        name=request.name,
        game_code=game_code,
        created_by=player.id,
        status=state.status,
        session_state=state.to_json(indent=None),
        players=json.dumps(players_list),
        config=json.dumps(settings.to_dict()),
    )
    db.add(row)
    db.commit()
    sessions[session_id] = state
    get_feed(session_id, state)
    LOGGER.info("Session %s created by %s with %d teams", session_id, player.username, len(state.teams))
    return {
        "session_id": session_id,
        "game_code": game_code,
        "name": request.name,
        "teams": [t.to_dict() for t in state.teams.values()],
    }


@app.get("/sessions")
def list_my_sessions(
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """List sessions the current player runs or plays in."""
    mine = []
    for row in db.query(SessionModel).all():
        member = membership(row, player)
        if member is None:
            continue
        try:
            state_dict = json.loads(row.session_state) if isinstance(row.session_state, str) else {}
        except (json.JSONDecodeError, TypeError):
            state_dict = {}
        if not isinstance(state_dict, dict):
            state_dict = {}
        mine.append({
            "id": str(row.id),
            "name": row.name,
            "game_code": row.game_code,
            "status": row.status,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "round_number": state_dict.get("round_number"),
            "role": member.get("role"),
            "team_id": member.get("team_id"),
        })
    return {"sessions": mine}


@app.post("/sessions/join")
def join_session(
    request: JoinSessionRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Join a session's team by 4-char game code."""
    code = request.game_code.strip().upper()
    if len(code) != GAME_CODE_LENGTH:
        raise HTTPException(status_code=400, detail="Game code must be 4 characters")
    row = db.query(SessionModel).filter(SessionModel.game_code == code).first()
    if not row:
        raise NotFoundError("Session not found")
    if row.status == "finished":
        raise IllegalTransitionError("Session is finished")
    state = get_session(row.id, db)
    if request.team_id not in state.teams:
        raise NotFoundError(f"Unknown team: {request.team_id}")
    with session_lock(row.id):
        players_list = load_members(row)
        existing = membership(row, player)
        if existing is not None:
            return {"session_id": row.id, "team_id": existing.get("team_id"), "message": "Already in session"}
        players_list.append({
            "player_id": str(player.id),
            "username": player.username,
            "team_id": request.team_id,
            "role": ROLE_TEAM,
            "representative": False,
        })
        store_members(row, players_list)
        db.commit()
    return {"session_id": row.id, "name": row.name, "team_id": request.team_id}


@app.get("/sessions/{session_id}")
def get_session_state(
    session_id: str,
    db: Session = Depends(get_db),
    player: Player | None = Depends(get_current_player_optional),
):
    """Current session state with standings. role/team_id describe the caller, if signed in."""
    row = get_session_row(session_id, db)
    state = get_session(session_id, db)
    member = membership(row, player)
    return {
        "session_id": session_id,
        "state": state_for_response(state),
        "role": member.get("role") if member else None,
        "team_id": member.get("team_id") if member else None,
        "is_representative": bool(member and member.get("representative")),
        "pending_save": session_id in pending_saves,
    }


@app.get("/sessions/{session_id}/meta")
def get_session_meta(session_id: str, db: Session = Depends(get_db)):
    """Session metadata (name, status, players, settings snapshot) for the lobby."""
    row = get_session_row(session_id, db)
    try:
        config = json.loads(row.config) if row.config else None
    except (json.JSONDecodeError, TypeError):
        config = None
    members = load_members(row)
    return {
        "id": row.id,
        "name": row.name,
        "game_code": row.game_code,
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "players": members,
        "representatives": representatives(members),
        "settings": config,
    }


@app.delete("/sessions/{session_id}")
def delete_session(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Delete a session from DB and cache. Operator only."""
    row = _require_operator_for(session_id, player, db)
    with session_lock(session_id):
        db.delete(row)
        db.commit()
        sessions.pop(session_id, None)
        pending_saves.pop(session_id, None)
        feeds.pop(session_id, None)
    with _session_locks_guard:
        _session_locks.pop(session_id, None)
    return {"message": f"Session {session_id} deleted"}


@app.get("/sessions/{session_id}/available-actions")
def get_available_actions(
    session_id: str,
    db: Session = Depends(get_db),
    player: Player | None = Depends(get_current_player_optional),
):
    """What the round is waiting for, and what the caller's team may target."""
    row = get_session_row(session_id, db)
    state = get_session(session_id, db)
    member = membership(row, player)
    team_id = member.get("team_id") if member else None
    out: dict[str, Any] = {
        "status": state.status,
        "round_number": state.round_number,
        "actions": get_available_action_types(state),
        "pending_teams": get_pending_teams(state),
    }
    if state.status == "targeting":
        out["attack_pairs"] = get_attack_pairs(state)
        if team_id:
            out["target_options"] = get_target_options(state, team_id)
    if team_id and team_id in state.teams:
        team = state.teams[team_id]
        out["team"] = {
            "team_id": team_id,
            "resources": team.resources,
            "is_eliminated": team.is_eliminated,
            "bet": state.bets[team_id].to_dict() if team_id in state.bets else None,
            "representative": representatives(load_members(row)).get(team_id),
        }
    return out


@app.get("/sessions/{session_id}/settlement")
def get_settlement(session_id: str, db: Session = Depends(get_db)):
    """Final standings of a finished session."""
    state = get_session(session_id, db)
    if state.status != "finished":
        raise IllegalTransitionError("Session is not finished yet")
    return {
        "session_id": session_id,
        "ended_by": state.ended_by,
        "winner": state.winner,
        "rounds_played": len(state.rounds),
        "settlements": [s.to_dict() for s in state.settlements],
    }


# ----- Operator actions -----

@app.post("/sessions/{session_id}/start")
def do_start_session(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Leave setup and open betting for round 1."""
    _require_operator_for(session_id, player, db)
    return _apply(session_id, start_session(), db)


@app.post("/sessions/{session_id}/targeting")
def do_start_targeting(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Close betting once every team has bet."""
    _require_operator_for(session_id, player, db)
    return _apply(session_id, start_targeting(), db)


@app.post("/sessions/{session_id}/battle")
def do_battle(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
    rng: RandomSource = Depends(get_random_source),
):
    """Roll the dice for every attack and resolve the round."""
    row = _require_operator_for(session_id, player, db)
    names = member_names(load_members(row))

    def roll_and_resolve(state: SessionState) -> Action:
        return resolve_battle(state.round_number, roll_battle_dice(state, rng), names)

    return _apply(
        session_id,
        roll_and_resolve,
        db,
        extra=lambda s: {"round": get_round_results(s)},
    )


@app.post("/sessions/{session_id}/next-round")
def do_next_round(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Start the next round, or finish the session when it is over."""
    _require_operator_for(session_id, player, db)
    return _apply(session_id, advance_round(), db)


@app.post("/sessions/{session_id}/end")
def do_end_session(
    session_id: str,
    request: EndSessionRequest | None = None,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Finish the session now and settle."""
    _require_operator_for(session_id, player, db)
    reason = request.reason if request else "operator"
    return _apply(session_id, end_session(reason), db)


@app.post("/sessions/{session_id}/adjust")
def do_adjust(
    session_id: str,
    request: AdjustRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Give or take cookies outside of battle (setup or result screen)."""
    _require_operator_for(session_id, player, db)
    return _apply(session_id, adjust_resources(request.team_id, request.delta, request.reason), db)


@app.post("/sessions/{session_id}/retry-save")
def do_retry_save(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Write a state whose save failed. Nothing is recomputed or re-rolled."""
    _require_operator_for(session_id, player, db)
    with session_lock(session_id):
        pending = pending_saves.get(session_id)
        if pending is None:
            return {"session_id": session_id, "saved": False, "message": "Nothing pending"}
        try:
            save_session(session_id, pending, db)
        except PersistenceError as e:
            return JSONResponse(
                status_code=503,
                content={"detail": str(e), "pending_save": True, "state": state_for_response(pending)},
            )
        return {"session_id": session_id, "saved": True, "state": state_for_response(pending)}


@app.post("/sessions/{session_id}/representative")
def do_set_representative(
    session_id: str,
    request: RepresentativeRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Choose which member of a team bets and targets for it."""
    row = _require_operator_for(session_id, player, db)
    state = get_session(session_id, db)
    if request.team_id not in state.teams:
        raise NotFoundError(f"Unknown team: {request.team_id}")
    with session_lock(session_id):
        db.refresh(row)
        members = load_members(row)
        set_representative(members, request.team_id, request.player_id)
        store_members(row, members)
        db.commit()
    return {"session_id": session_id, "representatives": representatives(members)}


@app.post("/sessions/{session_id}/representatives/auto")
def do_auto_assign_representatives(
    session_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Give every team still in the game without a representative its first member."""
    row = _require_operator_for(session_id, player, db)
    state = get_session(session_id, db)
    active = [tid for tid, team in state.teams.items() if not team.is_eliminated]
    with session_lock(session_id):
        db.refresh(row)
        members = load_members(row)
        assigned = auto_assign_representatives(members, active)
        if assigned:
            store_members(row, members)
            db.commit()
    LOGGER.info("Session %s: representatives assigned for %s", session_id, sorted(assigned))
    return {"session_id": session_id, "assigned": assigned, "representatives": representatives(members)}


# ----- Team actions -----

@app.post("/sessions/{session_id}/bet")
def do_bet(
    session_id: str,
    request: BetRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Submit (or replace) a team's attack and defense bet for this round. Representative or operator only."""
    row = get_session_row(session_id, db)
    require_team_representative(row, player, request.team_id)
    return _apply(session_id, submit_bet(request.team_id, request.attack_amount, request.defense_amount), db)


@app.post("/sessions/{session_id}/target")
def do_target(
    session_id: str,
    request: TargetRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Choose which team to attack (no target for a zero attack bet)."""
    row = get_session_row(session_id, db)
    require_team_representative(row, player, request.team_id)
    return _apply(session_id, submit_target(request.team_id, request.target_id), db)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
