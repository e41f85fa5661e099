"""SQLite-backed user repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.models import User, utcnow
from shared.dal.user_repository import UserRepository

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteUserRepository(UserRepository):
    """SQLite implementation of UserRepository.

    Uses a single INSERT under an asyncio lock to avoid race windows
    between existence checks and inserts. Relies on database uniqueness
    constraints and maps IntegrityError to domain ValueError.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def create_user(self, user: User) -> None:
        """Insert a user. Raises ValueError on duplicate id or username."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO users (id, username, data) VALUES (?, ?, ?)",
                    (user.user_id, user.username, user.model_dump_json()),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError as exc:
                self._db.connection.rollback()
                error_msg = str(exc).lower()
                if "users.id" in error_msg:
                    raise ValueError(f"User with id '{user.user_id}' already exists") from exc
                if "users.username" in error_msg or "idx_users_username" in error_msg:
                    raise ValueError(f"Username '{user.username}' already taken") from exc
                raise ValueError(str(exc)) from exc  # pragma: no cover

    async def update_user(self, user_id: str, **changes: Any) -> User | None:  # noqa: ANN401
        """Apply field changes and bump updated_at. Returns None when the user does not exist."""
        async with self._lock:
            current = await self.find_by_id(user_id)
            if current is None:
                return None
            updated = User.model_validate(
                {**current.model_dump(), **changes, "user_id": user_id, "updated_at": utcnow()},
            )
            try:
                self._db.connection.execute(
                    "UPDATE users SET username = ?, data = ? WHERE id = ?",
                    (updated.username, updated.model_dump_json(), user_id),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError as exc:
                self._db.connection.rollback()
                raise ValueError(f"Username '{updated.username}' already taken") from exc
            logger.debug("user updated", user_id=user_id, fields=sorted(changes))
            return updated

    async def list_all(self) -> list[User]:
        rows = self._db.connection.execute("SELECT data FROM users ORDER BY rowid").fetchall()
        return [User.model_validate(json.loads(row[0])) for row in rows]

    async def find_by_id(self, user_id: str) -> User | None:
        row = self._db.connection.execute("SELECT data FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return User.model_validate(json.loads(row[0]))

    async def find_by_username(self, username: str) -> User | None:
        """Look up a user by username (case-insensitive)."""
        row = self._db.connection.execute(
            "SELECT data FROM users WHERE username = ? COLLATE NOCASE",
            (username,),
        ).fetchone()
        if row is None:
            return None
        return User.model_validate(json.loads(row[0]))
