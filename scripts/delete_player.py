#!/usr/bin/env python3
"""
Delete a player by email so you can re-register with the same email/username.
Sessions the player runs are deleted with them; team memberships in other sessions are dropped.
Usage: python scripts/delete_player.py <email>
"""
import json
import sys
import os

# Allow running from repo root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy.exc import SQLAlchemyError

from cookie_battle.api.auth import load_members
from cookie_battle.api.database import get_db_file_path, session_scope
from cookie_battle.api.models import BattleSession, Player


def remove_player(db, player: Player) -> tuple[int, int]:
    """Delete the player's own sessions and drop them from the rest. Returns (deleted, left)."""
    player_id = str(player.id)
    deleted = left = 0
    for row in db.query(BattleSession).all():
        if str(row.created_by) == player_id:
            db.delete(row)
            deleted += 1
            continue
        members = load_members(row)
        kept = [m for m in members if str(m.get("player_id")) != player_id]
        if len(kept) != len(members):
            row.players = json.dumps(kept)
            left += 1
    db.delete(player)
    return deleted, left


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python scripts/delete_player.py <email>", file=sys.stderr)
        sys.exit(1)
    email = sys.argv[1].strip()
    if not email:
        print("Error: provide an email.", file=sys.stderr)
        sys.exit(1)

    try:
        with session_scope() as db:
            player = db.query(Player).filter(Player.email == email).first()
            if not player:
                print(f"No player found with email: {email!r} (db: {get_db_file_path()})")
                return
            username = player.username
            deleted, left = remove_player(db, player)
    except SQLAlchemyError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(
        f"Deleted player {username!r} ({email}), {deleted} session(s) they ran, "
        f"left {left} other session(s). You can now register again."
    )


if __name__ == "__main__":
    main()
