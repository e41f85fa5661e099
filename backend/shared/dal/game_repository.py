"""Abstract interface for game record persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import GameRecord


class GameRepository(ABC):
    """Abstract interface for game record persistence.

    list_all() may return records in any order; consumers sort by created_at.
    """

    @abstractmethod
    async def append(self, record: GameRecord) -> GameRecord: ...

    @abstractmethod
    async def list_all(self) -> list[GameRecord]: ...

    @abstractmethod
    async def find_by_id(self, game_id: str) -> GameRecord | None: ...
