"""SQLite-backed game repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING

import structlog

from shared.dal.game_repository import GameRepository
from shared.dal.models import GameRecord

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteGameRepository(GameRepository):
    """SQLite implementation of GameRepository.

    Stores full game records as JSON with an indexed created_at column so
    replay can read them back in chronological order.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def append(self, record: GameRecord) -> GameRecord:
        """Insert a game record. Raises ValueError on duplicate game_id."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO games (id, created_at, data) VALUES (?, ?, ?)",
                    (record.game_id, record.created_at.isoformat(), record.model_dump_json()),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError as exc:
                self._db.connection.rollback()
                raise ValueError(f"Game with id '{record.game_id}' already exists") from exc
        logger.debug("game appended", game_id=record.game_id)
        return record

    async def list_all(self) -> list[GameRecord]:
        """Return every game, oldest first."""
        rows = self._db.connection.execute("SELECT data FROM games ORDER BY created_at, rowid").fetchall()
        return [GameRecord.model_validate(json.loads(row[0])) for row in rows]

    async def find_by_id(self, game_id: str) -> GameRecord | None:
        row = self._db.connection.execute("SELECT data FROM games WHERE id = ?", (game_id,)).fetchone()
        if row is None:
            return None
        return GameRecord.model_validate(json.loads(row[0]))
