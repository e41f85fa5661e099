"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.game_repository import GameRepository
from shared.dal.memory import InMemoryGameRepository, InMemoryUserRepository
from shared.dal.models import GamePlayerRecord, GameRecord, User, UserRole
from shared.dal.user_repository import UserRepository

__all__ = [
    "GamePlayerRecord",
    "GameRecord",
    "GameRepository",
    "InMemoryGameRepository",
    "InMemoryUserRepository",
    "User",
    "UserRepository",
    "UserRole",
]
