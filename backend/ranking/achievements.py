"""
Achievement detection for single games and win/lose streaks.

Single-game rules are evaluated independently, so one game may earn several.
Streak rules award only the highest tier reached, plus a linear extra bonus
for every game beyond EXTRA_BONUS_STREAK.
"""

from __future__ import annotations

import operator
from typing import TYPE_CHECKING

import structlog

from ranking.exceptions import ConfigurationError
from ranking.settings import (
    DISABLED_ACHIEVEMENTS,
    AchievementCategory,
    AchievementConfig,
    AchievementRule,
    ConditionType,
)
from ranking.types import AchievementEarned

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ranking.config_provider import ConfigProvider
    from ranking.types import PlayerGameHistory

logger = structlog.get_logger()

WIN_MAX_POSITION = 2  # 1st or 2nd counts as a win
LOSE_POSITION = 4
MIN_STREAK = 2
EXTRA_BONUS_STREAK = 5

_POSITION_OPS: dict[str, Callable[[int, int], bool]] = {"eq": operator.eq, "ne": operator.ne}
_SCORE_OPS: dict[str, Callable[[int, int], bool]] = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}


def trailing_streak(positions: Sequence[int], predicate: Callable[[int], bool]) -> int:
    """Length of the run of qualifying positions ending at the last element."""
    streak = 0
    for position in reversed(positions):
        if not predicate(position):
            break
        streak += 1
    return streak


def is_win(position: int) -> bool:
    return position <= WIN_MAX_POSITION


def is_loss(position: int) -> bool:
    return position == LOSE_POSITION


def rule_matches(rule: AchievementRule, player_score: int, player_position: int) -> bool:
    """Evaluate a single-game rule against one player's result."""
    match rule.condition_type:
        case ConditionType.FINAL_SCORE_GTE:
            return player_score >= rule.threshold
        case ConditionType.FINAL_SCORE_LTE:
            return player_score <= rule.threshold
        case ConditionType.POSITION_EQ:
            return player_position == rule.threshold
        case ConditionType.POSITION_AND_SCORE:
            required_position, required_score = rule.position_and_score
            position_ok = _POSITION_OPS[rule.position_op](player_position, required_position)
            return position_ok and _SCORE_OPS[rule.score_op](player_score, required_score)
        case _:
            return False


class AchievementEngine:
    """Evaluate configured achievement rules.

    A disabled engine returns no achievements from every detection method.
    """

    def __init__(self, config: AchievementConfig | None = None) -> None:
        self._config = config or DISABLED_ACHIEVEMENTS

    @classmethod
    def from_provider(cls, provider: ConfigProvider) -> AchievementEngine:
        """Build from a provider, falling back to a disabled engine if its config cannot be loaded."""
        engine = cls()
        engine.update_config(provider)
        return engine

    def update_config(self, provider: ConfigProvider) -> None:
        try:
            self._config = provider.get_achievement_rules()
        except ConfigurationError:
            logger.warning("achievement configuration unavailable, achievements disabled", exc_info=True)
            self._config = DISABLED_ACHIEVEMENTS
            return
        logger.debug(
            "achievement engine configured",
            enabled=self._config.enabled,
            achievement_count=len(self._config.achievements),
        )

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def config(self) -> AchievementConfig:
        return self._config

    def _rules(self, category: AchievementCategory) -> list[AchievementRule]:
        return [a for a in self._config.achievements if a.category == category]

    def detect_single_game_achievements(
        self,
        player_score: int,
        player_position: int,
        all_scores: Sequence[int],  # noqa: ARG002
    ) -> list[AchievementEarned]:
        if not self._config.enabled:
            return []
        return [
            AchievementEarned(
                achievement_id=rule.id,
                achievement_name=rule.name,
                bonus_points=rule.bonus_points,
                description=rule.description,
                category=rule.category,
            )
            for rule in self._rules(AchievementCategory.SINGLE_GAME_GLORY)
            if rule_matches(rule, player_score, player_position)
        ]

    def detect_streak_achievements(
        self,
        player_history: Sequence[PlayerGameHistory],
        current_position: int,
    ) -> list[AchievementEarned]:
        """
        Detect win and lose streaks ending at the current game.

        player_history is the player's earlier games, oldest first; the current
        game is appended at the end before counting.
        """
        if not self._config.enabled:
            return []

        positions = [h.position for h in player_history]
        positions.append(current_position)

        earned: list[AchievementEarned] = []
        for category, predicate, per_game in (
            (AchievementCategory.WIN_STREAK, is_win, self._config.win_streak_extra_bonus_per_game),
            (AchievementCategory.LOSE_STREAK, is_loss, self._config.lose_streak_extra_bonus_per_game),
        ):
            streak = trailing_streak(positions, predicate)
            if streak < MIN_STREAK:
                continue
            rule = self._streak_rule(category, streak)
            if rule is None:
                continue
            extra = None
            if streak >= EXTRA_BONUS_STREAK:
                extra = (streak - EXTRA_BONUS_STREAK) * per_game
            earned.append(
                AchievementEarned(
                    achievement_id=rule.id,
                    achievement_name=rule.name,
                    bonus_points=rule.bonus_points + (extra or 0),
                    description=rule.description,
                    category=rule.category,
                    streak_count=streak,
                    extra_bonus_points=extra,
                ),
            )
        return earned

    def _streak_rule(self, category: AchievementCategory, streak: int) -> AchievementRule | None:
        """Highest-threshold rule of the category that the streak satisfies."""
        for rule in sorted(self._rules(category), key=lambda r: r.threshold, reverse=True):
            if streak >= rule.threshold:
                return rule
        return None

    def detect_all(
        self,
        player_score: int,
        player_position: int,
        all_scores: Sequence[int],
        player_history: Sequence[PlayerGameHistory],
    ) -> list[AchievementEarned]:
        return [
            *self.detect_single_game_achievements(player_score, player_position, all_scores),
            *self.detect_streak_achievements(player_history, player_position),
        ]

    @staticmethod
    def total_bonus(earned: Sequence[AchievementEarned]) -> int:
        return sum(a.bonus_points for a in earned)
