from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from board.server.settings import BoardServerSettings
from board.views import (
    apply_rank_curve,
    get_game,
    get_rank_config,
    get_ranking,
    get_ranking_stats,
    get_user,
    get_user_history,
    list_games,
    reload_config,
    submit_game,
    update_rank,
)
from ranking.cache import RecomputationCache
from ranking.config_provider import FileConfigProvider
from ranking.service import ScoringService
from shared.db import Database, SqliteGameRepository, SqliteUserRepository
from shared.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from ranking.config_provider import ConfigProvider
    from shared.dal.game_repository import GameRepository
    from shared.dal.user_repository import UserRepository

logger = structlog.get_logger()


async def health(request: Request) -> JSONResponse:
    cache: RecomputationCache = request.app.state.cache
    provider: ConfigProvider = request.app.state.config_provider
    return JSONResponse(
        {
            "status": "ok",
            "config_hash": provider.snapshot().digest(),
            "cache_state": cache.state.value,
        },
    )


def create_app(
    settings: BoardServerSettings | None = None,
    config_provider: ConfigProvider | None = None,
    game_repo: GameRepository | None = None,
    user_repo: UserRepository | None = None,
) -> Starlette:
    """Build the leaderboard app.

    Repositories default to SQLite at settings.database_path, importing the
    legacy JSON data directory once when configured. The config provider
    defaults to the YAML files in settings.config_dir.
    """
    if settings is None:  # pragma: no cover
        settings = BoardServerSettings()
    if config_provider is None:
        config_provider = FileConfigProvider(settings.config_dir)

    db: Database | None = None
    if game_repo is None or user_repo is None:
        db = Database(settings.database_path)
        db.connect()
        db.migrate_from_json(settings.legacy_data_dir)
        game_repo = game_repo or SqliteGameRepository(db)
        user_repo = user_repo or SqliteUserRepository(db)

    cache = RecomputationCache(config_provider, game_repo, user_repo, batch_size=settings.replay_batch_size)
    service = ScoringService(cache, game_repo, user_repo, config_provider)

    routes = [
        Route("/health", health, methods=["GET"], name="health"),
        Route("/api/ranking", get_ranking, methods=["GET"], name="ranking"),
        Route("/api/ranking/stats", get_ranking_stats, methods=["GET"], name="ranking_stats"),
        Route("/api/users/{user_id}", get_user, methods=["GET"], name="user"),
        Route("/api/users/{user_id}/history", get_user_history, methods=["GET"], name="user_history"),
        Route("/api/games", list_games, methods=["GET"], name="games"),
        Route("/api/games", submit_game, methods=["POST"], name="submit_game"),
        Route("/api/games/{game_id}", get_game, methods=["GET"], name="game"),
        Route("/api/config/ranks", get_rank_config, methods=["GET"], name="rank_config"),
        Route("/api/config/ranks/curve", apply_rank_curve, methods=["POST"], name="rank_curve"),
        Route("/api/config/ranks/{rank_id:int}", update_rank, methods=["PUT"], name="update_rank"),
        Route("/api/config/reload", reload_config, methods=["POST"], name="reload_config"),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:  # pragma: no cover
        yield
        if db is not None:
            db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type"],
    )

    app.state.settings = settings
    app.state.db = db
    app.state.config_provider = config_provider
    app.state.cache = cache
    app.state.service = service

    logger.info("board server ready", config_dir=settings.config_dir, replay_batch_size=settings.replay_batch_size)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory function for uvicorn --factory board.server.app:get_app."""
    s = BoardServerSettings()
    setup_logging(log_dir=s.log_dir)
    return create_app(settings=s)
