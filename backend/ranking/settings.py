"""Scoring configuration models: game constants, rank tiers, and achievement rules.

Every model is frozen. A configuration generation is replaced wholesale on
reload and identified by ScoringConfig.digest().
"""

from __future__ import annotations

import hashlib
import json
import re
from enum import StrEnum
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ranking.exceptions import RankLadderError

NUM_PLAYERS = 4
DEFAULT_TOTAL_POINTS = 100000

_CJK_DIGITS = "一二三四五六七八九"
_MINOR_RANK_PATTERN = re.compile(rf"([{_CJK_DIGITS}])[星段]")


class MinorRankType(StrEnum):
    DAN = "dan"
    STAR = "star"
    NONE = "none"


class AchievementCategory(StrEnum):
    SINGLE_GAME_GLORY = "single_game_glory"
    WIN_STREAK = "win_streak"
    LOSE_STREAK = "lose_streak"


class ConditionType(StrEnum):
    FINAL_SCORE_GTE = "final_score_gte"
    FINAL_SCORE_LTE = "final_score_lte"
    POSITION_EQ = "position_eq"
    POSITION_AND_SCORE = "position_and_score"
    STREAK_GTE = "streak_gte"


STREAK_CATEGORIES = frozenset({AchievementCategory.WIN_STREAK, AchievementCategory.LOSE_STREAK})


def parse_minor_rank(rank_name: str, minor_rank_type: MinorRankType) -> int:
    """Recover the 1-9 sub-rank from a CJK numeral in a display name.

    Used once when tiers are imported; lookups read RankTier.minor_rank.
    Returns 1 for `none`-type tiers or when no numeral is present.
    """
    if minor_rank_type == MinorRankType.NONE:
        return 1
    match = _MINOR_RANK_PATTERN.search(rank_name)
    if match is None:
        return 1
    return _CJK_DIGITS.index(match.group(1)) + 1


class GameConfig(BaseModel):
    """Numeric constants for converting raw scores into rank points."""

    model_config = ConfigDict(frozen=True)

    base_points: int = 25000
    total_points: int = Field(default=DEFAULT_TOTAL_POINTS, gt=0)
    initial_points: int = 0
    uma_points: tuple[int, int, int, int] = (20, 10, 0, -10)
    default_game_type: str = "hanchan"
    min_players: int = NUM_PLAYERS
    max_players: int = NUM_PLAYERS
    newbie_protection_max_rank: int = Field(default=9, ge=0)

    @model_validator(mode="after")
    def _validate_player_bounds(self) -> Self:
        if self.min_players > self.max_players:
            raise ValueError(f"min_players={self.min_players} exceeds max_players={self.max_players}")
        return self


class RankTier(BaseModel):
    """One bucket of the rank ladder: a closed point range with a display name."""

    model_config = ConfigDict(frozen=True)

    id: int
    rank_name: str = Field(min_length=1)
    min_points: int
    max_points: int
    promotion_bonus: int = 0
    demotion_penalty: int = 0
    rank_order: int = Field(ge=1)
    major_rank: str
    minor_rank_type: MinorRankType = MinorRankType.NONE
    minor_rank_range: tuple[int, int] = (0, 0)
    minor_rank: int = Field(default=1, ge=1, le=9)

    @model_validator(mode="before")
    @classmethod
    def _derive_minor_rank(cls, data: Any) -> Any:  # noqa: ANN401
        if not isinstance(data, dict):
            return data
        minor_type = MinorRankType(data.get("minor_rank_type", MinorRankType.NONE))
        # `none` tiers have no sub-levels; their minor rank is always 1.
        if data.get("minor_rank") is None or minor_type == MinorRankType.NONE:
            data = {**data, "minor_rank": parse_minor_rank(str(data.get("rank_name", "")), minor_type)}
        return data

    @model_validator(mode="after")
    def _validate_range(self) -> Self:
        if self.min_points >= self.max_points:
            raise ValueError(
                f"rank '{self.rank_name}' has min_points={self.min_points} >= max_points={self.max_points}",
            )
        return self

    def contains(self, points: int) -> bool:
        return self.min_points <= points <= self.max_points


FALLBACK_TIER = RankTier(
    id=1,
    rank_name="雀之气一段",
    min_points=0,
    max_points=99999,
    rank_order=1,
    major_rank="雀之气",
    minor_rank_type=MinorRankType.DAN,
    minor_rank_range=(1, 9),
)


def validate_rank_tiers(tiers: list[RankTier]) -> None:
    """Check that tiers partition [0, last.max_points] with no gaps and no overlaps.

    Raises RankLadderError describing every violation found.
    """
    if not tiers:
        raise RankLadderError("rank ladder is empty")

    ordered = sorted(tiers, key=lambda t: t.rank_order)
    errors: list[str] = []

    if ordered[0].min_points != 0:
        errors.append(f"lowest rank '{ordered[0].rank_name}' starts at {ordered[0].min_points}, expected 0")

    for prev, tier in zip(ordered, ordered[1:], strict=False):
        if tier.rank_order == prev.rank_order:
            errors.append(f"duplicate rank_order={tier.rank_order} ('{prev.rank_name}', '{tier.rank_name}')")
        elif tier.min_points <= prev.max_points:
            errors.append(
                f"'{tier.rank_name}' ({tier.min_points}-{tier.max_points}) overlaps "
                f"'{prev.rank_name}' ({prev.min_points}-{prev.max_points})",
            )
        elif tier.min_points != prev.max_points + 1:
            errors.append(
                f"gap between '{prev.rank_name}' and '{tier.rank_name}' "
                f"({prev.max_points + 1}-{tier.min_points - 1})",
            )

    ids = [t.id for t in ordered]
    if len(set(ids)) != len(ids):
        errors.append("rank ids are not unique")

    if errors:
        raise RankLadderError("; ".join(errors))


class AchievementRule(BaseModel):
    """A configured achievement.

    position_and_score rules take `condition_value` as "position:score" and
    compare with `position_op` / `score_op`, e.g. "1:40000" with eq/gte for a
    dominant first place, "4:10000" with ne/lt for a comeback that avoided last.
    Streak rules take an integer threshold.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    category: AchievementCategory
    condition_type: ConditionType
    condition_value: int | str
    bonus_points: int = 0
    position_op: Literal["eq", "ne"] = "eq"
    score_op: Literal["gte", "gt", "lte", "lt"] = "gte"
    icon: str = ""

    @model_validator(mode="after")
    def _validate_condition(self) -> Self:
        if self.category in STREAK_CATEGORIES:
            if self.condition_type != ConditionType.STREAK_GTE:
                raise ValueError(f"streak achievement '{self.id}' must use condition_type=streak_gte")
            _ = self.threshold
        elif self.condition_type == ConditionType.STREAK_GTE:
            raise ValueError(f"single-game achievement '{self.id}' cannot use condition_type=streak_gte")
        elif self.condition_type == ConditionType.POSITION_AND_SCORE:
            _ = self.position_and_score
        else:
            _ = self.threshold
        return self

    @property
    def threshold(self) -> int:
        try:
            return int(self.condition_value)
        except ValueError as exc:
            raise ValueError(f"achievement '{self.id}' condition_value must be an integer") from exc

    @property
    def position_and_score(self) -> tuple[int, int]:
        position, sep, score = str(self.condition_value).partition(":")
        if not sep:
            raise ValueError(f"achievement '{self.id}' condition_value must look like 'position:score'")
        try:
            return int(position), int(score)
        except ValueError as exc:
            raise ValueError(f"achievement '{self.id}' condition_value must look like 'position:score'") from exc


class AchievementConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    achievements: tuple[AchievementRule, ...] = ()
    win_streak_extra_bonus_per_game: int = 5
    lose_streak_extra_bonus_per_game: int = 3

    @field_validator("achievements")
    @classmethod
    def _unique_ids(cls, v: tuple[AchievementRule, ...]) -> tuple[AchievementRule, ...]:
        ids = [a.id for a in v]
        if len(set(ids)) != len(ids):
            raise ValueError("achievement ids must be unique")
        return v


DISABLED_ACHIEVEMENTS = AchievementConfig(enabled=False)


class ScoringConfig(BaseModel):
    """One configuration generation: everything that affects replayed points."""

    model_config = ConfigDict(frozen=True)

    game: GameConfig = GameConfig()
    ranks: tuple[RankTier, ...] = ()
    achievements: AchievementConfig = DISABLED_ACHIEVEMENTS

    def digest(self) -> str:
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True, ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
