"""Shared fixtures for board tests."""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from board.server.app import create_app
from board.server.settings import BoardServerSettings
from ranking.config_provider import StaticConfigProvider
from ranking.tests.conftest import GAME_EPOCH, PLAYERS, scoring_config
from shared.dal import InMemoryGameRepository, InMemoryUserRepository, User

PASSWORD_HASH = "$2b$10$not-a-real-hash"


def create_board_users() -> list[User]:
    return [
        User(
            user_id=pid,
            username=pid,
            nickname=pid.title(),
            password_hash=PASSWORD_HASH,
            created_at=GAME_EPOCH,
            updated_at=GAME_EPOCH,
        )
        for pid in PLAYERS
    ]


@pytest.fixture
def board_provider() -> StaticConfigProvider:
    return StaticConfigProvider(scoring_config())


@pytest.fixture
def client(tmp_path, board_provider):
    app = create_app(
        settings=BoardServerSettings(database_path=tmp_path / "unused.db", log_dir=None),
        config_provider=board_provider,
        game_repo=InMemoryGameRepository(),
        user_repo=InMemoryUserRepository(create_board_users()),
    )
    with TestClient(app) as c:
        yield c
