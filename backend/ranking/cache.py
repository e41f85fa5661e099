"""
Standings cache built by replaying the full game log.

The cache is the single source of truth for current user standings and point
histories. A snapshot is keyed by the digest of the configuration that
produced it; a digest mismatch or an explicit invalidate() makes the next read
replay every game from scratch. Concurrent readers share one in-flight replay.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ranking.achievements import AchievementEngine
from ranking.calculator import PointCalculator
from ranking.exceptions import RankingError
from ranking.ladder import RankLadder
from ranking.types import PlayerGameHistory, PointHistoryEntry, UserStats

if TYPE_CHECKING:
    from ranking.config_provider import ConfigProvider
    from ranking.settings import ScoringConfig
    from shared.dal.game_repository import GameRepository
    from shared.dal.models import GameRecord
    from shared.dal.user_repository import UserRepository

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 100
AVERAGE_POSITION_DIGITS = 2


class CacheState(StrEnum):
    INVALID = "invalid"
    COMPUTING = "computing"
    VALID = "valid"


class StandingsSnapshot(BaseModel):
    """Result of one full replay."""

    model_config = ConfigDict(frozen=True)

    config_hash: str
    computed_at: datetime
    user_stats: dict[str, UserStats] = Field(default_factory=dict)
    point_histories: dict[str, list[PointHistoryEntry]] = Field(default_factory=dict)
    default_stats: UserStats
    games_replayed: int = 0
    skipped_game_ids: list[str] = Field(default_factory=list)


def build_user_stats(ladder: RankLadder, total_points: int, positions: list[int]) -> UserStats:
    tier = ladder.resolve(total_points)
    games_played = len(positions)
    average = round(sum(positions) / games_played, AVERAGE_POSITION_DIGITS) if games_played else 0.0
    return UserStats(
        total_points=total_points,
        rank_level=tier.rank_order,
        rank_points=total_points - tier.min_points,
        games_played=games_played,
        wins=sum(1 for p in positions if p == 1),
        average_position=average,
        current_rank=tier.rank_name,
    )


class RecomputationCache:
    """Owns the current standings generation and the single-flight replay."""

    def __init__(
        self,
        config_provider: ConfigProvider,
        game_repository: GameRepository,
        user_repository: UserRepository,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._provider = config_provider
        self._games = game_repository
        self._users = user_repository
        self._batch_size = batch_size

        self._snapshot: StandingsSnapshot | None = None
        self._generation = 0
        self._inflight: asyncio.Task[StandingsSnapshot] | None = None
        self._inflight_hash: str | None = None
        self._replay_count = 0

        self._provider.on_change(self.invalidate)

    @property
    def replay_count(self) -> int:
        """Number of replays started since construction."""
        return self._replay_count

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def state(self) -> CacheState:
        if self._inflight is not None and not self._inflight.done():
            return CacheState.COMPUTING
        if self._snapshot is not None and self._snapshot.config_hash == self._provider.snapshot().digest():
            return CacheState.VALID
        return CacheState.INVALID

    def invalidate(self) -> None:
        """Drop the current snapshot. The next read replays from scratch.

        A replay already in flight still completes for the callers awaiting
        it, but its result is not stored.
        """
        self._generation += 1
        self._snapshot = None
        self._inflight = None
        self._inflight_hash = None
        logger.debug("standings cache invalidated", generation=self._generation)

    async def get_or_compute(self) -> StandingsSnapshot:
        config = self._provider.snapshot()
        digest = config.digest()
        if self._snapshot is not None:
            if self._snapshot.config_hash == digest:
                return self._snapshot
            logger.info("configuration changed, standings cache is stale", generation=self._generation)
            self.invalidate()

        task = self._inflight
        if task is None or self._inflight_hash != digest:
            task = self._start_replay(config, digest)
        # The replay runs to completion even if this caller is cancelled.
        return await asyncio.shield(task)

    def _start_replay(self, config: ScoringConfig, digest: str) -> asyncio.Task[StandingsSnapshot]:
        self._replay_count += 1
        generation = self._generation
        task = asyncio.create_task(self._replay(config, digest, generation), name=f"standings-replay-{generation}")
        task.add_done_callback(self._on_replay_done)
        self._inflight = task
        self._inflight_hash = digest
        return task

    def _on_replay_done(self, task: asyncio.Task[StandingsSnapshot]) -> None:
        if self._inflight is task:
            self._inflight = None
            self._inflight_hash = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("standings replay failed", exc_info=task.exception())

    async def _replay(self, config: ScoringConfig, digest: str, generation: int) -> StandingsSnapshot:
        started = datetime.now(tz=UTC)
        users = await self._users.list_all()
        games = sorted(await self._games.list_all(), key=lambda g: g.created_at)
        logger.info("replaying game log", games=len(games), users=len(users), generation=generation)

        ladder = RankLadder(config.ranks)
        calculator = PointCalculator(config.game, ladder)
        engine = AchievementEngine(config.achievements)
        initial_points = config.game.initial_points
        names = {u.user_id: u.display_name for u in users}

        points: dict[str, int] = {u.user_id: initial_points for u in users}
        histories: dict[str, list[PointHistoryEntry]] = {u.user_id: [] for u in users}
        game_logs: defaultdict[str, list[PlayerGameHistory]] = defaultdict(list)
        skipped: list[str] = []

        for start in range(0, len(games), self._batch_size):
            for game in games[start : start + self._batch_size]:
                if not self._apply_game(game, calculator, engine, ladder, names, points, histories, game_logs):
                    skipped.append(game.game_id)
            if start + self._batch_size < len(games):
                await asyncio.sleep(0)

        user_stats = {
            u.user_id: build_user_stats(
                ladder,
                points[u.user_id],
                [h.position for h in game_logs.get(u.user_id, [])],
            )
            for u in users
        }
        snapshot = StandingsSnapshot(
            config_hash=digest,
            computed_at=datetime.now(tz=UTC),
            user_stats=user_stats,
            point_histories=histories,
            default_stats=build_user_stats(ladder, initial_points, []),
            games_replayed=len(games) - len(skipped),
            skipped_game_ids=skipped,
        )

        if generation == self._generation:
            self._snapshot = snapshot
        else:
            logger.info("discarding replay result from an invalidated generation", generation=generation)
        elapsed_ms = (snapshot.computed_at - started).total_seconds() * 1000
        logger.info(
            "replay finished",
            games_replayed=snapshot.games_replayed,
            games_skipped=len(skipped),
            elapsed_ms=round(elapsed_ms, 1),
        )
        return snapshot

    @staticmethod
    def _apply_game(  # noqa: PLR0913
        game: GameRecord,
        calculator: PointCalculator,
        engine: AchievementEngine,
        ladder: RankLadder,
        names: dict[str, str],
        points: dict[str, int],
        histories: dict[str, list[PointHistoryEntry]],
        game_logs: defaultdict[str, list[PlayerGameHistory]],
    ) -> bool:
        """Apply one game to the running totals. Returns False if the game was skipped."""
        try:
            calculations = calculator.compute(game.scores, game.player_ids, points)
        except RankingError as exc:
            logger.warning("skipping historical game", game_id=game.game_id, reason=str(exc))
            return False

        initial_points = calculator.initial_points
        scores = game.scores
        for player, calc in zip(game.players, calculations, strict=True):
            user_id = player.user_id
            earlier = game_logs[user_id]
            earned = engine.detect_all(calc.final_score, calc.position, scores, earlier)
            bonus = engine.total_bonus(earned)

            before = points.get(user_id, initial_points)
            after = before + calc.rank_points + bonus
            points[user_id] = after

            histories.setdefault(user_id, []).append(
                PointHistoryEntry(
                    game_id=game.game_id,
                    points_before=before,
                    points_after=after,
                    points_change=calc.rank_points + bonus,
                    original_points_change=calc.original_rank_points + bonus,
                    is_newbie_protected=calc.is_newbie_protected,
                    rank_before=ladder.display_name(before),
                    rank_after=ladder.display_name(after),
                    game_date=game.created_at,
                    position=calc.position,
                    final_score=calc.final_score,
                    opponents=[names.get(p.user_id, p.user_id) for p in game.players if p.user_id != user_id],
                    achievements=earned,
                ),
            )
            earlier.append(
                PlayerGameHistory(
                    game_id=game.game_id,
                    position=calc.position,
                    final_score=calc.final_score,
                    game_date=game.created_at,
                ),
            )
        return True

    async def get_user_stats(self, user_id: str) -> UserStats:
        """Stats for one user; users without a record or games get initial standings."""
        snapshot = await self.get_or_compute()
        return snapshot.user_stats.get(user_id, snapshot.default_stats)

    async def get_user_history(self, user_id: str) -> list[PointHistoryEntry]:
        """Point history for one player, oldest first."""
        snapshot = await self.get_or_compute()
        return list(snapshot.point_histories.get(user_id, []))

    async def get_all_stats(self) -> dict[str, UserStats]:
        snapshot = await self.get_or_compute()
        return dict(snapshot.user_stats)
