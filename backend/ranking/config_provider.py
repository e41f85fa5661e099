"""Configuration providers: the typed source of game, rank, and achievement settings.

Providers hand out frozen configuration generations and notify listeners when
the generation changes. FileConfigProvider reads YAML files and polls their
modification times on every read, so edits on disk take effect without a
restart.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from pydantic import ValidationError

from ranking.defaults import default_scoring_config
from ranking.exceptions import ConfigurationError
from ranking.settings import (
    DISABLED_ACHIEVEMENTS,
    AchievementConfig,
    GameConfig,
    RankTier,
    ScoringConfig,
    validate_rank_tiers,
)
from shared.storage import atomic_write_text

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = structlog.get_logger()

GAME_FILE = "game.yaml"
RANKS_FILE = "ranks.yaml"
ACHIEVEMENTS_FILE = "achievements.yaml"
_WATCHED_FILES = (GAME_FILE, RANKS_FILE, ACHIEVEMENTS_FILE)


class ConfigProvider(ABC):
    """Abstract source of scoring configuration."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[], None]] = []

    @abstractmethod
    def get_game_config(self) -> GameConfig: ...

    @abstractmethod
    def get_rank_tiers(self) -> tuple[RankTier, ...]: ...

    @abstractmethod
    def get_achievement_rules(self) -> AchievementConfig: ...

    def snapshot(self) -> ScoringConfig:
        """Return the active generation as a single frozen value."""
        try:
            achievements = self.get_achievement_rules()
        except ConfigurationError:
            logger.warning("achievement configuration unavailable, achievements disabled", exc_info=True)
            achievements = DISABLED_ACHIEVEMENTS
        return ScoringConfig(game=self.get_game_config(), ranks=self.get_rank_tiers(), achievements=achievements)

    @abstractmethod
    def replace_rank_tiers(self, tiers: Iterable[RankTier]) -> tuple[RankTier, ...]:
        """Swap in a full tier set after validating it. Raises RankLadderError."""

    def update_rank_tier(self, tier_id: int, **changes: Any) -> RankTier:  # noqa: ANN401
        """Update one tier in place of the current set; the full set must still partition the range."""
        tiers = list(self.get_rank_tiers())
        index = next((i for i, t in enumerate(tiers) if t.id == tier_id), None)
        if index is None:
            raise KeyError(f"rank {tier_id} does not exist")
        data = {**tiers[index].model_dump(), **changes, "id": tier_id}
        if changes.keys() & {"rank_name", "minor_rank_type"} and "minor_rank" not in changes:
            data.pop("minor_rank")
        try:
            tiers[index] = RankTier.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid update for rank {tier_id}: {exc}") from exc
        self.replace_rank_tiers(tiers)
        return tiers[index]

    def reload(self) -> None:
        """Re-read the configuration source and notify listeners."""
        self._notify_change()

    def on_change(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify_change(self) -> None:
        for callback in list(self._listeners):
            callback()


class StaticConfigProvider(ConfigProvider):
    """In-memory provider; update() swaps in a new generation."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        super().__init__()
        self._config = config or default_scoring_config()

    def get_game_config(self) -> GameConfig:
        return self._config.game

    def get_rank_tiers(self) -> tuple[RankTier, ...]:
        return self._config.ranks

    def get_achievement_rules(self) -> AchievementConfig:
        return self._config.achievements

    def snapshot(self) -> ScoringConfig:
        return self._config

    def update(
        self,
        *,
        game: GameConfig | None = None,
        ranks: Iterable[RankTier] | None = None,
        achievements: AchievementConfig | None = None,
    ) -> None:
        new_ranks = self._config.ranks
        if ranks is not None:
            new_ranks = tuple(sorted(ranks, key=lambda t: t.rank_order))
            validate_rank_tiers(list(new_ranks))
        self._config = ScoringConfig(
            game=game or self._config.game,
            ranks=new_ranks,
            achievements=achievements or self._config.achievements,
        )
        self._notify_change()

    def replace_rank_tiers(self, tiers: Iterable[RankTier]) -> tuple[RankTier, ...]:
        self.update(ranks=tiers)
        return self._config.ranks


def _read_yaml(path: Path) -> Any:  # noqa: ANN401
    try:
        with path.open(encoding="utf-8") as f:
            return yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to read {path}") from exc


class FileConfigProvider(ConfigProvider):
    """YAML-file-backed provider with modification-time hot reload.

    game.yaml is required. A missing ranks.yaml yields the single fallback
    tier; a missing or malformed achievements.yaml disables achievements.
    A reload that fails validation is logged and the previous generation
    stays active.
    """

    def __init__(self, config_dir: str | Path) -> None:
        super().__init__()
        self._config_dir = Path(config_dir)
        self._mtimes = self._stat_files()
        self._current = self._load()
        logger.info("configuration loaded", config_dir=str(self._config_dir), digest=self._current.digest()[:12])

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def _path(self, name: str) -> Path:
        return self._config_dir / name

    def _stat_files(self) -> dict[str, int | None]:
        mtimes: dict[str, int | None] = {}
        for name in _WATCHED_FILES:
            path = self._path(name)
            mtimes[name] = path.stat().st_mtime_ns if path.exists() else None
        return mtimes

    def _load_game(self) -> GameConfig:
        path = self._path(GAME_FILE)
        if not path.exists():
            raise ConfigurationError(f"Game configuration not found: {path}")
        data = _read_yaml(path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a mapping at root in {path}")
        try:
            return GameConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid game configuration in {path}") from exc

    def _load_ranks(self) -> tuple[RankTier, ...]:
        path = self._path(RANKS_FILE)
        if not path.exists():
            logger.warning("rank configuration not found, using fallback rank", path=str(path))
            return ()
        data = _read_yaml(path) or {}
        raw_ranks = data.get("ranks", []) if isinstance(data, dict) else None
        if not isinstance(raw_ranks, list):
            raise ConfigurationError(f"Expected a 'ranks' list in {path}")
        try:
            tiers = tuple(sorted((RankTier.model_validate(r) for r in raw_ranks), key=lambda t: t.rank_order))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid rank configuration in {path}") from exc
        if tiers:
            validate_rank_tiers(list(tiers))
        return tiers

    def _load_achievements(self) -> AchievementConfig:
        path = self._path(ACHIEVEMENTS_FILE)
        if not path.exists():
            logger.warning("achievement configuration not found, achievements disabled", path=str(path))
            return DISABLED_ACHIEVEMENTS
        try:
            data = _read_yaml(path)
            return AchievementConfig.model_validate(data or {})
        except (ConfigurationError, ValidationError):
            logger.warning("invalid achievement configuration, achievements disabled", path=str(path), exc_info=True)
            return DISABLED_ACHIEVEMENTS

    def _load(self) -> ScoringConfig:
        return ScoringConfig(
            game=self._load_game(),
            ranks=self._load_ranks(),
            achievements=self._load_achievements(),
        )

    def check_and_reload(self) -> bool:
        """Reload when any watched file changed on disk. Return True if the generation changed."""
        mtimes = self._stat_files()
        if mtimes == self._mtimes:
            return False
        self._mtimes = mtimes
        try:
            loaded = self._load()
        except ConfigurationError:
            logger.exception("configuration reload failed, keeping previous configuration")
            return False
        if loaded.digest() == self._current.digest():
            return False
        self._current = loaded
        logger.info("configuration reloaded", digest=loaded.digest()[:12])
        self._notify_change()
        return True

    def reload(self) -> None:
        """Force a re-read. Raises ConfigurationError instead of keeping stale config."""
        self._mtimes = self._stat_files()
        self._current = self._load()
        logger.info("configuration reloaded", digest=self._current.digest()[:12], forced=True)
        self._notify_change()

    def snapshot(self) -> ScoringConfig:
        self.check_and_reload()
        return self._current

    def get_game_config(self) -> GameConfig:
        return self.snapshot().game

    def get_rank_tiers(self) -> tuple[RankTier, ...]:
        return self.snapshot().ranks

    def get_achievement_rules(self) -> AchievementConfig:
        return self.snapshot().achievements

    def replace_rank_tiers(self, tiers: Iterable[RankTier]) -> tuple[RankTier, ...]:
        """Validate and persist a full tier set, then reload."""
        ordered = tuple(sorted(tiers, key=lambda t: t.rank_order))
        validate_rank_tiers(list(ordered))
        content = yaml.safe_dump(
            {"ranks": [t.model_dump(mode="json") for t in ordered]},
            allow_unicode=True,
            sort_keys=False,
        )
        atomic_write_text(self._path(RANKS_FILE), content)
        self.reload()
        return self._current.ranks
