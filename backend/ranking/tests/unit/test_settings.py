import pytest
from pydantic import ValidationError

from ranking.defaults import default_rank_tiers, default_scoring_config
from ranking.exceptions import RankLadderError
from ranking.settings import (
    AchievementCategory,
    AchievementConfig,
    AchievementRule,
    ConditionType,
    GameConfig,
    MinorRankType,
    RankTier,
    ScoringConfig,
    parse_minor_rank,
    validate_rank_tiers,
)


def _tier(rank_order: int, min_points: int, max_points: int, **overrides) -> RankTier:
    data = {
        "id": rank_order,
        "rank_name": f"tier-{rank_order}",
        "min_points": min_points,
        "max_points": max_points,
        "rank_order": rank_order,
        "major_rank": "test",
    }
    return RankTier(**{**data, **overrides})


class TestGameConfig:
    def test_defaults(self):
        config = GameConfig()
        assert config.base_points == 25000
        assert config.total_points == 100000
        assert config.initial_points == 0
        assert config.uma_points == (20, 10, 0, -10)
        assert config.newbie_protection_max_rank == 9

    def test_uma_needs_four_entries(self):
        with pytest.raises(ValidationError):
            GameConfig(uma_points=(20, 10, -30))

    def test_total_points_must_be_positive(self):
        with pytest.raises(ValidationError):
            GameConfig(total_points=0)

    def test_player_bounds(self):
        with pytest.raises(ValidationError, match="exceeds max_players"):
            GameConfig(min_players=5, max_players=4)

    def test_is_frozen(self):
        config = GameConfig()
        with pytest.raises(ValidationError):
            config.base_points = 30000


class TestParseMinorRank:
    @pytest.mark.parametrize(
        ("name", "minor_type", "expected"),
        [
            ("雀之气一段", MinorRankType.DAN, 1),
            ("雀之气九段", MinorRankType.DAN, 9),
            ("五星雀灵", MinorRankType.STAR, 5),
            ("三星大雀师", MinorRankType.STAR, 3),
            ("雀帝", MinorRankType.NONE, 1),
            ("七星雀王", MinorRankType.NONE, 1),
            ("雀者", MinorRankType.STAR, 1),
        ],
    )
    def test_parse(self, name, minor_type, expected):
        assert parse_minor_rank(name, minor_type) == expected


class TestRankTier:
    def test_minor_rank_derived_from_name(self):
        tier = _tier(1, 0, 99, rank_name="四星雀者", minor_rank_type=MinorRankType.STAR)
        assert tier.minor_rank == 4

    def test_explicit_minor_rank_wins(self):
        tier = _tier(1, 0, 99, rank_name="四星雀者", minor_rank_type=MinorRankType.STAR, minor_rank=2)
        assert tier.minor_rank == 2

    def test_untyped_tier_has_no_sub_levels(self):
        tier = _tier(1, 0, 99, rank_name="雀帝", minor_rank=5)
        assert tier.minor_rank == 1
        assert RankTier.model_validate({**tier.model_dump(), "minor_rank": 5}).minor_rank == 1

    def test_min_must_be_below_max(self):
        with pytest.raises(ValidationError, match="min_points"):
            _tier(1, 100, 100)

    def test_contains_is_inclusive(self):
        tier = _tier(1, 100, 199)
        assert tier.contains(100)
        assert tier.contains(199)
        assert not tier.contains(99)
        assert not tier.contains(200)


class TestValidateRankTiers:
    def test_default_ladder_is_valid(self):
        validate_rank_tiers(list(default_rank_tiers()))

    def test_default_ladder_shape(self):
        tiers = default_rank_tiers()
        assert len(tiers) == 91
        assert tiers[0].rank_name == "雀之气一段"
        assert tiers[9].rank_name == "一星雀者"
        assert tiers[-1].rank_name == "雀帝"
        assert tiers[-1].min_points == 9000

    def test_empty(self):
        with pytest.raises(RankLadderError, match="empty"):
            validate_rank_tiers([])

    def test_must_start_at_zero(self):
        with pytest.raises(RankLadderError, match="expected 0"):
            validate_rank_tiers([_tier(1, 10, 99), _tier(2, 100, 199)])

    def test_gap(self):
        with pytest.raises(RankLadderError, match="gap between 'tier-1' and 'tier-2'"):
            validate_rank_tiers([_tier(1, 0, 99), _tier(2, 150, 199)])

    def test_overlap(self):
        with pytest.raises(RankLadderError, match="overlaps"):
            validate_rank_tiers([_tier(1, 0, 99), _tier(2, 50, 199)])

    def test_duplicate_rank_order(self):
        with pytest.raises(RankLadderError, match="duplicate rank_order"):
            validate_rank_tiers([_tier(1, 0, 99), _tier(1, 100, 199, id=2)])

    def test_duplicate_ids(self):
        with pytest.raises(RankLadderError, match="ids are not unique"):
            validate_rank_tiers([_tier(1, 0, 99), _tier(2, 100, 199, id=1)])

    def test_order_independent(self):
        validate_rank_tiers([_tier(2, 100, 199), _tier(1, 0, 99)])


class TestAchievementRule:
    def test_position_and_score_parsed(self):
        rule = AchievementRule(
            id="r",
            name="r",
            category=AchievementCategory.SINGLE_GAME_GLORY,
            condition_type=ConditionType.POSITION_AND_SCORE,
            condition_value="1:40000",
        )
        assert rule.position_and_score == (1, 40000)

    def test_malformed_position_and_score(self):
        with pytest.raises(ValidationError, match="position:score"):
            AchievementRule(
                id="r",
                name="r",
                category=AchievementCategory.SINGLE_GAME_GLORY,
                condition_type=ConditionType.POSITION_AND_SCORE,
                condition_value="40000",
            )

    def test_streak_rule_needs_streak_condition(self):
        with pytest.raises(ValidationError, match="streak_gte"):
            AchievementRule(
                id="r",
                name="r",
                category=AchievementCategory.WIN_STREAK,
                condition_type=ConditionType.FINAL_SCORE_GTE,
                condition_value=3,
            )

    def test_single_game_rule_cannot_use_streak_condition(self):
        with pytest.raises(ValidationError, match="cannot use"):
            AchievementRule(
                id="r",
                name="r",
                category=AchievementCategory.SINGLE_GAME_GLORY,
                condition_type=ConditionType.STREAK_GTE,
                condition_value=3,
            )

    def test_unique_ids_in_config(self):
        rule = AchievementRule(
            id="dup",
            name="r",
            category=AchievementCategory.SINGLE_GAME_GLORY,
            condition_type=ConditionType.FINAL_SCORE_GTE,
            condition_value=50000,
        )
        with pytest.raises(ValidationError, match="unique"):
            AchievementConfig(enabled=True, achievements=(rule, rule))


class TestScoringConfigDigest:
    def test_digest_is_stable(self):
        assert default_scoring_config().digest() == default_scoring_config().digest()

    def test_any_tier_boundary_changes_digest(self):
        config = default_scoring_config()
        ranks = list(config.ranks)
        ranks[0] = ranks[0].model_copy(update={"max_points": 98})
        changed = ScoringConfig(game=config.game, ranks=tuple(ranks), achievements=config.achievements)
        assert changed.digest() != config.digest()

    def test_game_constant_changes_digest(self):
        config = default_scoring_config()
        changed = config.model_copy(update={"game": GameConfig(total_points=120000)})
        assert changed.digest() != config.digest()

    def test_achievement_bonus_changes_digest(self):
        config = default_scoring_config()
        changed = config.model_copy(
            update={"achievements": config.achievements.model_copy(update={"win_streak_extra_bonus_per_game": 9})},
        )
        assert changed.digest() != config.digest()
