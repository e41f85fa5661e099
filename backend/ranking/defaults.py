"""Built-in rank ladder and achievement rules."""

from ranking.settings import (
    AchievementCategory,
    AchievementConfig,
    AchievementRule,
    ConditionType,
    GameConfig,
    MinorRankType,
    RankTier,
    ScoringConfig,
)

DAN_MAJOR_RANK = "雀之气"
STAR_MAJOR_RANKS = ("雀者", "雀师", "大雀师", "雀灵", "雀王", "雀皇", "雀宗", "雀尊", "雀圣")
TOP_MAJOR_RANK = "雀帝"
POINTS_PER_TIER = 100
TOP_TIER_MAX_POINTS = 9999999

_NUMERALS = "一二三四五六七八九"


def default_rank_tiers() -> tuple[RankTier, ...]:
    """91 tiers: 雀之气 1-9段, nine star-graded major ranks, then 雀帝 (9000+)."""
    names: list[tuple[str, str, MinorRankType]] = [
        (f"{DAN_MAJOR_RANK}{n}段", DAN_MAJOR_RANK, MinorRankType.DAN) for n in _NUMERALS
    ]
    for major in STAR_MAJOR_RANKS:
        names.extend((f"{n}星{major}", major, MinorRankType.STAR) for n in _NUMERALS)

    tiers = [
        RankTier(
            id=order,
            rank_name=name,
            min_points=(order - 1) * POINTS_PER_TIER,
            max_points=order * POINTS_PER_TIER - 1,
            rank_order=order,
            major_rank=major,
            minor_rank_type=minor_type,
            minor_rank_range=(1, 9),
        )
        for order, (name, major, minor_type) in enumerate(names, start=1)
    ]
    top_order = len(tiers) + 1
    tiers.append(
        RankTier(
            id=top_order,
            rank_name=TOP_MAJOR_RANK,
            min_points=len(names) * POINTS_PER_TIER,
            max_points=TOP_TIER_MAX_POINTS,
            rank_order=top_order,
            major_rank=TOP_MAJOR_RANK,
        ),
    )
    return tuple(tiers)


def default_achievements() -> AchievementConfig:
    return AchievementConfig(
        enabled=True,
        achievements=(
            AchievementRule(
                id="crushing_win",
                name="碾压局",
                description="1st place with at least 40,000 points",
                category=AchievementCategory.SINGLE_GAME_GLORY,
                condition_type=ConditionType.POSITION_AND_SCORE,
                condition_value="1:40000",
                bonus_points=5,
            ),
            AchievementRule(
                id="perfect_dodge",
                name="完美避四",
                description="3rd place with more than 30,000 points",
                category=AchievementCategory.SINGLE_GAME_GLORY,
                condition_type=ConditionType.POSITION_AND_SCORE,
                condition_value="3:30000",
                score_op="gt",
                bonus_points=3,
            ),
            AchievementRule(
                id="comeback",
                name="逆转运",
                description="Under 10,000 points without finishing last",
                category=AchievementCategory.SINGLE_GAME_GLORY,
                condition_type=ConditionType.POSITION_AND_SCORE,
                condition_value="4:10000",
                position_op="ne",
                score_op="lt",
                bonus_points=3,
            ),
            AchievementRule(
                id="win_streak_2",
                name="二连胜",
                description="Two consecutive top-two finishes",
                category=AchievementCategory.WIN_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=2,
                bonus_points=2,
            ),
            AchievementRule(
                id="win_streak_3",
                name="三连胜",
                description="Three consecutive top-two finishes",
                category=AchievementCategory.WIN_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=3,
                bonus_points=4,
            ),
            AchievementRule(
                id="win_streak_4",
                name="四连胜",
                description="Four consecutive top-two finishes",
                category=AchievementCategory.WIN_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=4,
                bonus_points=6,
            ),
            AchievementRule(
                id="win_streak_5",
                name="五连胜",
                description="Five or more consecutive top-two finishes",
                category=AchievementCategory.WIN_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=5,
                bonus_points=10,
            ),
            AchievementRule(
                id="lose_streak_2",
                name="二连四",
                description="Two consecutive last places",
                category=AchievementCategory.LOSE_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=2,
                bonus_points=1,
            ),
            AchievementRule(
                id="lose_streak_3",
                name="三连四",
                description="Three consecutive last places",
                category=AchievementCategory.LOSE_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=3,
                bonus_points=2,
            ),
            AchievementRule(
                id="lose_streak_5",
                name="五连四",
                description="Five or more consecutive last places",
                category=AchievementCategory.LOSE_STREAK,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=5,
                bonus_points=5,
            ),
        ),
    )


def default_scoring_config() -> ScoringConfig:
    return ScoringConfig(game=GameConfig(), ranks=default_rank_tiers(), achievements=default_achievements())
