"""In-memory repository implementations for tests and ephemeral servers."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.game_repository import GameRepository
from shared.dal.models import utcnow
from shared.dal.user_repository import UserRepository

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.models import GameRecord, User

logger = structlog.get_logger()


class InMemoryGameRepository(GameRepository):
    """Append-only game store kept in insertion order."""

    def __init__(self, records: Iterable[GameRecord] = ()) -> None:
        self._records: dict[str, GameRecord] = {r.game_id: r for r in records}
        self._lock = asyncio.Lock()

    async def append(self, record: GameRecord) -> GameRecord:
        async with self._lock:
            if record.game_id in self._records:
                raise ValueError(f"game {record.game_id} already exists")
            self._records[record.game_id] = record
        logger.debug("game appended", game_id=record.game_id)
        return record

    async def list_all(self) -> list[GameRecord]:
        return list(self._records.values())

    async def find_by_id(self, game_id: str) -> GameRecord | None:
        return self._records.get(game_id)


class InMemoryUserRepository(UserRepository):
    def __init__(self, users: Iterable[User] = ()) -> None:
        self._users: dict[str, User] = {u.user_id: u for u in users}
        self._lock = asyncio.Lock()

    async def create_user(self, user: User) -> None:
        async with self._lock:
            if user.user_id in self._users:
                raise ValueError(f"user {user.user_id} already exists")
            if await self.find_by_username(user.username) is not None:
                raise ValueError(f"username '{user.username}' is already taken")
            self._users[user.user_id] = user

    async def update_user(self, user_id: str, **changes: Any) -> User | None:  # noqa: ANN401
        async with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            data = {**current.model_dump(), **changes, "user_id": user_id, "updated_at": utcnow()}
            updated = type(current).model_validate(data)
            self._users[user_id] = updated
            return updated

    async def list_all(self) -> list[User]:
        return list(self._users.values())

    async def find_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def find_by_username(self, username: str) -> User | None:
        wanted = username.casefold()
        return next((u for u in self._users.values() if u.username.casefold() == wanted), None)
