"""Zero-sum validation for four-player score vectors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ranking.exceptions import InvalidGameSubmissionError, InvalidScoreSumError
from ranking.settings import DEFAULT_TOTAL_POINTS, NUM_PLAYERS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ranking.settings import GameConfig


class ScoreValidator:
    """Check that a score vector sums to the configured total."""

    def __init__(self, total_points: int = DEFAULT_TOTAL_POINTS) -> None:
        self._total_points = total_points

    @classmethod
    def from_config(cls, config: GameConfig) -> ScoreValidator:
        return cls(config.total_points)

    @property
    def total_points(self) -> int:
        return self._total_points

    def validate(self, scores: Sequence[int]) -> bool:
        return sum(scores) == self._total_points

    def require_valid(self, scores: Sequence[int]) -> None:
        """Raise when the vector has the wrong length or does not sum to the total."""
        if len(scores) != NUM_PLAYERS:
            raise InvalidGameSubmissionError(f"exactly {NUM_PLAYERS} scores are required, got {len(scores)}")
        if not self.validate(scores):
            raise InvalidScoreSumError(expected=self._total_points, actual=sum(scores))
