from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from ranking.cache import RecomputationCache
from ranking.calculator import assign_positions
from ranking.config_provider import StaticConfigProvider
from ranking.defaults import default_rank_tiers
from ranking.settings import DISABLED_ACHIEVEMENTS, GameConfig, ScoringConfig
from ranking.service import ScoringService
from shared.dal import GamePlayerRecord, GameRecord, InMemoryGameRepository, InMemoryUserRepository, User

if TYPE_CHECKING:
    from collections.abc import Sequence

GAME_EPOCH = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
PLAYERS = ("alice", "bob", "carol", "dave")


# ============================================================================
# Test Data Builder Helpers
# ============================================================================


def create_user(user_id: str, *, nickname: str = "") -> User:
    return User(user_id=user_id, username=user_id, nickname=nickname, created_at=GAME_EPOCH, updated_at=GAME_EPOCH)


def create_game(
    game_id: str,
    scores: Sequence[int],
    players: Sequence[str] = PLAYERS,
    *,
    minutes: int = 0,
) -> GameRecord:
    """Create a GameRecord with positions derived from the scores, GAME_EPOCH + minutes."""
    positions = assign_positions(scores)
    return GameRecord(
        game_id=game_id,
        created_at=GAME_EPOCH + timedelta(minutes=minutes),
        players=[
            GamePlayerRecord(user_id=pid, final_score=score, position=position)
            for pid, score, position in zip(players, scores, positions, strict=True)
        ],
    )


def scoring_config(*, achievements=DISABLED_ACHIEVEMENTS, **game_overrides) -> ScoringConfig:
    return ScoringConfig(
        game=GameConfig(**game_overrides),
        ranks=default_rank_tiers(),
        achievements=achievements,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def provider() -> StaticConfigProvider:
    """Default ladder and game constants, achievements disabled."""
    return StaticConfigProvider(scoring_config())


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository([create_user(pid) for pid in PLAYERS])


@pytest.fixture
def game_repo() -> InMemoryGameRepository:
    return InMemoryGameRepository()


@pytest.fixture
def cache(provider, game_repo, user_repo) -> RecomputationCache:
    return RecomputationCache(provider, game_repo, user_repo, batch_size=2)


@pytest.fixture
def service(cache, game_repo, user_repo, provider) -> ScoringService:
    return ScoringService(cache, game_repo, user_repo, provider)
