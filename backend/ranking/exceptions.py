"""Typed domain exceptions for scoring and configuration failures.

Submission-time violations use subclasses of RankingError rather than raw
ValueError. This enables consistent catch-and-convert at the HTTP boundary
and per-game containment during replay, where a historical game that no
longer satisfies the active configuration is skipped instead of aborting
the whole recomputation.
"""


class RankingError(Exception):
    """Base exception for scoring rule violations."""


class InvalidGameSubmissionError(RankingError):
    """A game submission is structurally invalid (player count, duplicates, unknown users)."""


class InvalidScoreSumError(InvalidGameSubmissionError):
    """Four-player score vector does not add up to the configured total.

    Attributes:
        expected: The configured total (e.g. 100000).
        actual: The sum of the submitted scores.

    """

    def __init__(self, *, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"total must equal {expected}, got {actual}")


class ConfigurationError(Exception):
    """Scoring configuration is missing or malformed."""


class RankLadderError(ConfigurationError):
    """Rank tiers do not partition the point range (gap, overlap, bad ordering)."""


class CurveExpressionError(ConfigurationError):
    """A rank-curve formula uses syntax or names outside the allowed set."""
