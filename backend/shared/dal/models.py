"""Persistence models for the data access layer.

Validation also accepts the camelCase keys of the legacy JSON data files
(`id`, `userId`, `finalScore`, `createdAt`, ...) so old exports load as-is.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Self

from pydantic import AliasChoices, BaseModel, Field, model_validator

PLAYERS_PER_GAME = 4


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class User(BaseModel, frozen=True):
    """Identity only; points and ranks are derived by replay."""

    user_id: str = Field(validation_alias=AliasChoices("user_id", "id"))
    username: str = Field(min_length=1)
    password_hash: str = Field(default="", validation_alias=AliasChoices("password_hash", "passwordHash"))
    nickname: str = ""
    avatar: str = ""
    role: UserRole = UserRole.USER
    created_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("created_at", "createdAt"))
    updated_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("updated_at", "updatedAt"))

    @property
    def display_name(self) -> str:
        return self.nickname or self.username


class GamePlayerRecord(BaseModel, frozen=True):
    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId"))
    final_score: int = Field(validation_alias=AliasChoices("final_score", "finalScore"))
    position: int = Field(ge=1, le=PLAYERS_PER_GAME)


class GameRecord(BaseModel, frozen=True):
    """A recorded game. Immutable once created; players are kept in seat order."""

    game_id: str = Field(validation_alias=AliasChoices("game_id", "id"))
    game_type: str = Field(default="hanchan", validation_alias=AliasChoices("game_type", "gameType"))
    created_at: datetime = Field(default_factory=utcnow, validation_alias=AliasChoices("created_at", "createdAt"))
    players: list[GamePlayerRecord]

    @model_validator(mode="after")
    def _validate_players(self) -> Self:
        if len(self.players) != PLAYERS_PER_GAME:
            raise ValueError(f"a game needs exactly {PLAYERS_PER_GAME} players, got {len(self.players)}")
        if sorted(p.position for p in self.players) != list(range(1, PLAYERS_PER_GAME + 1)):
            raise ValueError("player positions must be a permutation of 1..4")
        if len({p.user_id for p in self.players}) != PLAYERS_PER_GAME:
            raise ValueError("a player cannot take more than one seat")
        return self

    @property
    def player_ids(self) -> list[str]:
        return [p.user_id for p in self.players]

    @property
    def scores(self) -> list[int]:
        return [p.final_score for p in self.players]
