"""Leaderboard server configuration via environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from ranking.cache import DEFAULT_BATCH_SIZE
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class BoardServerSettings(BaseSettings):
    model_config = {"env_prefix": "BOARD_"}

    log_dir: str | None = "backend/logs/board"
    config_dir: Path = Path("backend/config")
    database_path: Path = Path("backend/data/board.db")
    legacy_data_dir: Path | None = None  # directory with users.json/games.json/gamePlayers.json to import once
    cors_origins: list[str] = []
    replay_batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)
