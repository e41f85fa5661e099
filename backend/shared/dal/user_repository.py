"""Abstract interface for user persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shared.dal.models import User


class UserRepository(ABC):
    """Abstract interface for user persistence.

    Implementations can use memory, SQLite, PostgreSQL, etc.
    """

    @abstractmethod
    async def create_user(self, user: User) -> None: ...

    @abstractmethod
    async def update_user(self, user_id: str, **changes: Any) -> User | None: ...  # noqa: ANN401

    @abstractmethod
    async def list_all(self) -> list[User]: ...

    @abstractmethod
    async def find_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def find_by_username(self, username: str) -> User | None: ...
