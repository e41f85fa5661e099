"""
Rank-point calculation for a single four-player game.

Converts a validated score vector into per-seat raw/uma/rank points and
applies newbie protection relative to each player's pre-game rank.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from ranking.exceptions import InvalidGameSubmissionError
from ranking.settings import NUM_PLAYERS
from ranking.types import MahjongCalculation
from ranking.validation import ScoreValidator

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ranking.ladder import RankLadder
    from ranking.settings import GameConfig

POINTS_PER_UNIT = 1000
_ONE_DECIMAL = Decimal("0.1")


def assign_positions(scores: Sequence[int]) -> list[int]:
    """
    Return the 1-based finishing position of each seat, in seat order.

    Higher score places higher. Equal scores are ordered by seat index, so the
    seat entered first takes the better position.
    """
    order = sorted(range(len(scores)), key=lambda seat: (-scores[seat], seat))
    positions = [0] * len(scores)
    for placement, seat in enumerate(order, start=1):
        positions[seat] = placement
    return positions


def round_raw_points(score_diff: int) -> float:
    """Divide a score difference by 1000 and round to one decimal, half away from zero."""
    value = (Decimal(score_diff) / POINTS_PER_UNIT).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return float(value)


def ceil_rank_points(score_diff: int, uma: int) -> int:
    """
    Compute ceil(score_diff / 1000 + uma) in integer arithmetic.

    -1500 with uma 0 -> -1, 1500 -> 2: fractions always round up.
    """
    total = score_diff + uma * POINTS_PER_UNIT
    return -(-total // POINTS_PER_UNIT)


class PointCalculator:
    """Compute per-seat rank-point deltas under one game configuration."""

    def __init__(self, config: GameConfig, ladder: RankLadder) -> None:
        self._config = config
        self._ladder = ladder
        self._validator = ScoreValidator.from_config(config)

    @property
    def config(self) -> GameConfig:
        return self._config

    @property
    def initial_points(self) -> int:
        return self._config.initial_points

    @property
    def validator(self) -> ScoreValidator:
        return self._validator

    def is_protected_rank(self, points: int) -> bool:
        return self._ladder.resolve(points).rank_order <= self._config.newbie_protection_max_rank

    def compute(
        self,
        scores: Sequence[int],
        player_ids: Sequence[str],
        pre_game_points: Mapping[str, int],
    ) -> list[MahjongCalculation]:
        """
        Compute one MahjongCalculation per seat, returned in seat order.

        pre_game_points supplies each player's total before this game; players
        missing from it are treated as holding initial_points. A player whose
        pre-game tier is at or below newbie_protection_max_rank has a negative
        result clamped to 0; positive results are never changed.
        """
        self._validator.require_valid(scores)
        if len(player_ids) != NUM_PLAYERS:
            raise InvalidGameSubmissionError(f"exactly {NUM_PLAYERS} players are required, got {len(player_ids)}")

        positions = assign_positions(scores)
        results: list[MahjongCalculation] = []
        for seat, score in enumerate(scores):
            position = positions[seat]
            uma = self._config.uma_points[position - 1]
            diff = score - self._config.base_points
            original = ceil_rank_points(diff, uma)

            points_before = pre_game_points.get(player_ids[seat], self._config.initial_points)
            protected = original < 0 and self.is_protected_rank(points_before)

            results.append(
                MahjongCalculation(
                    final_score=score,
                    raw_points=round_raw_points(diff),
                    uma_points=uma,
                    rank_points=0 if protected else original,
                    original_rank_points=original,
                    is_newbie_protected=protected,
                    position=position,
                ),
            )
        return results
