"""Rank ladder: resolve a cumulative point total to a rank tier."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ranking.settings import FALLBACK_TIER, RankTier, validate_rank_tiers
from ranking.types import RankInfo

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = structlog.get_logger()


class RankLadder:
    """Immutable ordered list of rank tiers.

    Lookup is fail-open: a point total outside every tier (configuration gap,
    negative total, or above the top tier) resolves to the lowest tier so that
    rank display never raises. Coverage is checked separately with validate(),
    which config loading runs before a ladder goes live.
    """

    def __init__(self, tiers: Iterable[RankTier]) -> None:
        ordered = tuple(sorted(tiers, key=lambda t: t.rank_order))
        if not ordered:
            logger.warning("rank configuration is empty, using fallback rank", rank_name=FALLBACK_TIER.rank_name)
            ordered = (FALLBACK_TIER,)
        self._tiers = ordered

    @property
    def tiers(self) -> tuple[RankTier, ...]:
        return self._tiers

    @property
    def lowest(self) -> RankTier:
        return self._tiers[0]

    def validate(self) -> None:
        validate_rank_tiers(list(self._tiers))

    def resolve(self, points: int) -> RankTier:
        for tier in self._tiers:
            if tier.contains(points):
                return tier
        return self._tiers[0]

    def describe(self, points: int) -> RankInfo:
        tier = self.resolve(points)
        return RankInfo(
            major_rank=tier.major_rank,
            minor_rank=self.extract_minor_rank(tier),
            minor_rank_type=tier.minor_rank_type,
            display_name=tier.rank_name,
            tier=tier,
        )

    def display_name(self, points: int) -> str:
        return self.resolve(points).rank_name

    @staticmethod
    def extract_minor_rank(tier: RankTier) -> int:
        """Sub-rank 1-9 within the tier's major rank (parsed from the name at import time)."""
        return tier.minor_rank

    def major_ranks(self) -> list[str]:
        """Distinct major-rank labels in ladder order."""
        seen: dict[str, None] = {}
        for tier in self._tiers:
            seen.setdefault(tier.major_rank, None)
        return list(seen)

    def find_by_order(self, rank_order: int) -> RankTier | None:
        return next((t for t in self._tiers if t.rank_order == rank_order), None)
