"""SQLite database connection and schema management."""

import json
import os
import sqlite3
from collections import defaultdict
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel

from shared.dal.models import GamePlayerRecord, GameRecord, User

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

LEGACY_USERS_FILE = "users.json"
LEGACY_GAMES_FILE = "games.json"
LEGACY_GAME_PLAYERS_FILE = "gamePlayers.json"

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username
    ON users (username COLLATE NOCASE);

CREATE TABLE IF NOT EXISTS games (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_games_created_at
    ON games (created_at);
"""


class Database:
    """SQLite database wrapper with schema management and legacy import support."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        parent = Path(self._path).parent
        parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)

        self._harden_permissions()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def migrate_from_json(self, legacy_data_dir: str | Path | None) -> tuple[int, int]:
        """Import users and games from a legacy JSON data directory.

        The directory holds users.json, games.json and gamePlayers.json, each a
        JSON array of camelCase records. Player rows are joined onto their game
        in file order, which is taken as seat order. Stored point totals in the
        legacy user records are ignored; standings are recomputed by replay.

        Returns (users, games) imported. Skips when the path is None, the
        directory does not exist, or either table already has data. The import
        runs in a single transaction; any failure causes a full rollback.
        """
        if legacy_data_dir is None:
            return 0, 0

        data_dir = Path(legacy_data_dir)
        if not data_dir.is_dir():
            return 0, 0

        conn = self.connection
        existing = conn.execute("SELECT (SELECT COUNT(*) FROM users) + (SELECT COUNT(*) FROM games)").fetchone()
        if existing[0] > 0:
            logger.info("database already has data, skipping legacy import")
            return 0, 0

        users = [
            self._parse_record(User, record, data_dir / LEGACY_USERS_FILE)
            for record in _read_legacy_array(data_dir / LEGACY_USERS_FILE)
        ]
        games = self._join_legacy_games(data_dir)
        self._insert_imported(conn, users, games)

        logger.info("imported legacy data", users=len(users), games=len(games), path=str(data_dir))
        return len(users), len(games)

    def _join_legacy_games(self, data_dir: Path) -> list[GameRecord]:
        players_path = data_dir / LEGACY_GAME_PLAYERS_FILE
        players_by_game: dict[str, list[GamePlayerRecord]] = defaultdict(list)
        for record in _read_legacy_array(players_path):
            if not isinstance(record, dict) or "gameId" not in record:
                raise OSError(f"Player record without gameId in {players_path}")
            players_by_game[record["gameId"]].append(self._parse_record(GamePlayerRecord, record, players_path))

        games_path = data_dir / LEGACY_GAMES_FILE
        games: list[GameRecord] = []
        for record in _read_legacy_array(games_path):
            if not isinstance(record, dict):
                raise OSError(f"Expected JSON object records in {games_path}")
            players = players_by_game.get(record.get("id", ""), [])
            games.append(self._parse_record(GameRecord, {**record, "players": players}, games_path))
        return games

    @staticmethod
    def _parse_record(model: type[BaseModel], record: Any, path: Path) -> Any:  # noqa: ANN401
        try:
            return model.model_validate(record)
        except ValueError as exc:
            key = record.get("id", "?") if isinstance(record, dict) else "?"
            msg = f"Invalid {model.__name__} record '{key}' in {path}"
            raise OSError(msg) from exc

    @staticmethod
    def _insert_imported(conn: sqlite3.Connection, users: list[User], games: list[GameRecord]) -> None:
        """Insert all imported rows in a single transaction."""
        try:
            conn.execute("BEGIN")
            for user in users:
                conn.execute(
                    "INSERT INTO users (id, username, data) VALUES (?, ?, ?)",
                    (user.user_id, user.username, user.model_dump_json()),
                )
            for game in games:
                conn.execute(
                    "INSERT INTO games (id, created_at, data) VALUES (?, ?, ?)",
                    (game.game_id, game.created_at.isoformat(), game.model_dump_json()),
                )
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    def _harden_permissions(self) -> None:
        """Set restrictive file permissions on POSIX systems (best effort).

        Hardens the main DB file and WAL/SHM sibling files created by WAL mode,
        since they also contain database content (password hashes).
        """
        if os.name != "posix":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))


def _read_legacy_array(path: Path) -> list[Any]:
    """Read one legacy JSON array file. A missing file reads as empty."""
    if not path.exists():
        return []
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise OSError(f"Failed to read legacy JSON file: {path}") from exc

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        raise OSError(f"Malformed JSON in legacy file: {path}") from exc

    if not isinstance(data, list):
        raise OSError(f"Expected JSON array at root in {path}")
    return data
