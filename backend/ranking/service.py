"""
Scoring service: game submission and standings queries.

Submission computes the new game's deltas against the cached standings, stores
the record and invalidates the cache before returning, so the next read
replays with the new game included. Read paths only ever consult the cache.
"""

from __future__ import annotations

import uuid
from collections import Counter
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ranking.achievements import AchievementEngine
from ranking.calculator import PointCalculator
from ranking.exceptions import InvalidGameSubmissionError
from ranking.ladder import RankLadder
from ranking.settings import NUM_PLAYERS
from ranking.types import (
    AchievementEarned,
    MahjongCalculation,
    PlayerGameHistory,
    PointHistoryEntry,
    RankInfo,
    UserStats,
)
from shared.dal.models import GamePlayerRecord, GameRecord, User, utcnow

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from ranking.cache import RecomputationCache
    from ranking.config_provider import ConfigProvider
    from shared.dal.game_repository import GameRepository
    from shared.dal.user_repository import UserRepository

logger = structlog.get_logger()

DEFAULT_LEADERBOARD_LIMIT = 50
DEFAULT_HISTORY_LIMIT = 20
DEFAULT_GAME_LIST_LIMIT = 20


class GameSubmission(BaseModel):
    model_config = ConfigDict(frozen=True)

    game: GameRecord
    calculations: list[MahjongCalculation]
    achievements: dict[str, list[AchievementEarned]] = Field(default_factory=dict)


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int
    user_id: str
    username: str
    nickname: str
    avatar: str
    total_points: int
    rank_level: int
    current_rank: str
    major_rank: str
    games_played: int


class Leaderboard(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: list[LeaderboardEntry]
    total: int
    major_ranks: list[str]


class RankDistribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    major_rank_counts: dict[str, int]
    rank_counts: dict[str, int]
    total_users: int
    total_games: int
    average_points: int
    major_ranks: list[str]


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: User
    stats: UserStats
    rank: RankInfo


class GameDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    game: GameRecord
    entries: dict[str, PointHistoryEntry | None]


class GameSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    game: GameRecord
    player_names: list[str]  # display names in seat order


class GameList(BaseModel):
    model_config = ConfigDict(frozen=True)

    games: list[GameSummary]
    total: int


class ScoringService:
    def __init__(
        self,
        cache: RecomputationCache,
        game_repository: GameRepository,
        user_repository: UserRepository,
        config_provider: ConfigProvider,
    ) -> None:
        self._cache = cache
        self._games = game_repository
        self._users = user_repository
        self._provider = config_provider

    @property
    def cache(self) -> RecomputationCache:
        return self._cache

    def ladder(self) -> RankLadder:
        return RankLadder(self._provider.get_rank_tiers())

    async def _require_players(self, player_ids: Sequence[str]) -> None:
        if len(player_ids) != NUM_PLAYERS:
            raise InvalidGameSubmissionError(f"exactly {NUM_PLAYERS} players are required, got {len(player_ids)}")
        if len(set(player_ids)) != NUM_PLAYERS:
            raise InvalidGameSubmissionError("each player can only take one seat")
        for player_id in player_ids:
            if await self._users.find_by_id(player_id) is None:
                raise InvalidGameSubmissionError(f"unknown player: {player_id}")

    async def submit_game(
        self,
        player_ids: Sequence[str],
        scores: Sequence[int],
        game_type: str | None = None,
        *,
        created_at: datetime | None = None,
    ) -> GameSubmission:
        """
        Validate, score and record a game.

        Raises InvalidScoreSumError when the scores do not add up to the
        configured total and InvalidGameSubmissionError for any other rejected
        submission. Nothing is stored when a submission is rejected.
        """
        await self._require_players(player_ids)
        config = self._provider.snapshot()
        calculator = PointCalculator(config.game, RankLadder(config.ranks))
        calculator.validator.require_valid(scores)

        standings = await self._cache.get_or_compute()
        pre_game_points = {
            pid: standings.user_stats.get(pid, standings.default_stats).total_points for pid in player_ids
        }
        calculations = calculator.compute(scores, player_ids, pre_game_points)

        engine = AchievementEngine(config.achievements)
        achievements: dict[str, list[AchievementEarned]] = {}
        for player_id, calc in zip(player_ids, calculations, strict=True):
            history = [
                PlayerGameHistory(
                    game_id=entry.game_id,
                    position=entry.position,
                    final_score=entry.final_score,
                    game_date=entry.game_date,
                )
                for entry in standings.point_histories.get(player_id, [])
            ]
            achievements[player_id] = engine.detect_all(calc.final_score, calc.position, scores, history)

        record = GameRecord(
            game_id=uuid.uuid4().hex,
            game_type=game_type or config.game.default_game_type,
            created_at=created_at or utcnow(),
            players=[
                GamePlayerRecord(user_id=pid, final_score=calc.final_score, position=calc.position)
                for pid, calc in zip(player_ids, calculations, strict=True)
            ],
        )
        await self._games.append(record)
        self._cache.invalidate()
        logger.info(
            "game recorded",
            game_id=record.game_id,
            game_type=record.game_type,
            rank_points=[c.rank_points for c in calculations],
        )
        return GameSubmission(game=record, calculations=calculations, achievements=achievements)

    async def leaderboard(
        self,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
        offset: int = 0,
        major_rank: str | None = None,
    ) -> Leaderboard:
        """Users by total points, highest first. Positions count within the filtered list."""
        ladder = self.ladder()
        stats = await self._cache.get_all_stats()
        rows: list[tuple[User, UserStats, RankInfo]] = []
        for user in await self._users.list_all():
            user_stats = stats.get(user.user_id) or await self._cache.get_user_stats(user.user_id)
            info = ladder.describe(user_stats.total_points)
            if major_rank is None or info.major_rank == major_rank:
                rows.append((user, user_stats, info))
        rows.sort(key=lambda row: -row[1].total_points)

        entries = [
            LeaderboardEntry(
                position=index,
                user_id=user.user_id,
                username=user.username,
                nickname=user.nickname,
                avatar=user.avatar,
                total_points=user_stats.total_points,
                rank_level=user_stats.rank_level,
                current_rank=user_stats.current_rank,
                major_rank=info.major_rank,
                games_played=user_stats.games_played,
            )
            for index, (user, user_stats, info) in enumerate(rows, start=1)
        ]
        return Leaderboard(
            entries=entries[offset : offset + limit],
            total=len(entries),
            major_ranks=ladder.major_ranks(),
        )

    async def rank_distribution(self) -> RankDistribution:
        ladder = self.ladder()
        stats = await self._cache.get_all_stats()
        major_counts: Counter[str] = Counter()
        rank_counts: Counter[str] = Counter()
        for user_stats in stats.values():
            info = ladder.describe(user_stats.total_points)
            major_counts[info.major_rank] += 1
            rank_counts[info.display_name] += 1
        total_users = len(stats)
        average = sum(s.total_points for s in stats.values()) / total_users if total_users else 0
        return RankDistribution(
            major_rank_counts=dict(major_counts),
            rank_counts=dict(rank_counts),
            total_users=total_users,
            total_games=sum(s.games_played for s in stats.values()),
            average_points=round(average),
            major_ranks=ladder.major_ranks(),
        )

    async def user_profile(self, user_id: str) -> UserProfile | None:
        user = await self._users.find_by_id(user_id)
        if user is None:
            return None
        stats = await self._cache.get_user_stats(user_id)
        return UserProfile(user=user, stats=stats, rank=self.ladder().describe(stats.total_points))

    async def user_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[PointHistoryEntry]:
        """Most recent point history entries first."""
        history = await self._cache.get_user_history(user_id)
        return list(reversed(history))[:limit]

    async def game_detail(self, game_id: str) -> GameDetail | None:
        """The game record plus each seat's replayed history entry (None if the game was skipped)."""
        record = await self._games.find_by_id(game_id)
        if record is None:
            return None
        entries: dict[str, PointHistoryEntry | None] = {}
        for player_id in record.player_ids:
            history = await self._cache.get_user_history(player_id)
            entries[player_id] = next((e for e in history if e.game_id == game_id), None)
        return GameDetail(game=record, entries=entries)

    async def list_games(self, limit: int = DEFAULT_GAME_LIST_LIMIT, offset: int = 0) -> GameList:
        """Recorded games, newest first, including games the current config skips."""
        records = sorted(await self._games.list_all(), key=lambda g: g.created_at)
        records.reverse()
        names = {u.user_id: u.display_name for u in await self._users.list_all()}
        page = records[offset : offset + limit]
        return GameList(
            games=[
                GameSummary(game=record, player_names=[names.get(pid, pid) for pid in record.player_ids])
                for record in page
            ],
            total=len(records),
        )
