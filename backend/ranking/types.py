"""
Pydantic models for derived scoring data.

Everything here is produced by replay or by a single calculation and is owned
by the cache generation that produced it.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ranking.settings import AchievementCategory, MinorRankType, RankTier


class MahjongCalculation(BaseModel):
    """Per-seat output of one PointCalculator invocation."""

    model_config = ConfigDict(frozen=True)

    final_score: int
    raw_points: float  # (score - base_points) / 1000, one decimal
    uma_points: int
    rank_points: int  # applied delta after newbie protection
    original_rank_points: int  # ceil(raw + uma) before protection
    is_newbie_protected: bool = False
    position: int


class AchievementEarned(BaseModel):
    model_config = ConfigDict(frozen=True)

    achievement_id: str
    achievement_name: str
    bonus_points: int  # includes extra_bonus_points when present
    description: str = ""
    category: AchievementCategory
    streak_count: int | None = None
    extra_bonus_points: int | None = None


class PlayerGameHistory(BaseModel):
    """Minimal per-game record used for streak detection."""

    model_config = ConfigDict(frozen=True)

    game_id: str
    position: int
    final_score: int
    game_date: datetime


class PointHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    game_id: str
    points_before: int
    points_after: int
    points_change: int
    original_points_change: int
    is_newbie_protected: bool
    rank_before: str
    rank_after: str
    game_date: datetime
    position: int
    final_score: int
    opponents: list[str] = Field(default_factory=list)
    achievements: list[AchievementEarned] = Field(default_factory=list)


class UserStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_points: int
    rank_level: int  # rank_order of the resolved tier
    rank_points: int  # total_points - tier.min_points
    games_played: int = 0
    wins: int = 0
    average_position: float = 0.0
    current_rank: str


class RankInfo(BaseModel):
    """Display descriptor for a point total."""

    model_config = ConfigDict(frozen=True)

    major_rank: str
    minor_rank: int
    minor_rank_type: MinorRankType
    display_name: str
    tier: RankTier
