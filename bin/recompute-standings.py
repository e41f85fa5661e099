"""Replay the full game log and print timing plus the top of the leaderboard.

Usage:
    uv run python bin/recompute-standings.py
    uv run python bin/recompute-standings.py --iterations 5 --top 20
    uv run python bin/recompute-standings.py --database backend/data/board.db --config-dir backend/config
    uv run python bin/recompute-standings.py --import-legacy data/
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import statistics
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from board.server.settings import BoardServerSettings
from ranking.cache import RecomputationCache
from ranking.config_provider import FileConfigProvider
from ranking.service import ScoringService
from shared.db import Database, SqliteGameRepository, SqliteUserRepository
from shared.logging import setup_logging

if TYPE_CHECKING:
    from ranking.service import LeaderboardEntry


async def recompute(args: argparse.Namespace) -> None:
    settings = BoardServerSettings()
    provider = FileConfigProvider(args.config_dir or settings.config_dir)
    db = Database(args.database or settings.database_path)
    db.connect()
    try:
        if args.import_legacy is not None:
            users, games = db.migrate_from_json(args.import_legacy)
            print(f"Imported {users} users and {games} games from {args.import_legacy}")

        game_repo = SqliteGameRepository(db)
        user_repo = SqliteUserRepository(db)
        cache = RecomputationCache(provider, game_repo, user_repo, batch_size=args.batch_size)
        service = ScoringService(cache, game_repo, user_repo, provider)

        elapsed_times = []
        for _ in range(args.iterations):
            cache.invalidate()
            start = time.perf_counter()
            snapshot = await cache.get_or_compute()
            elapsed_times.append(time.perf_counter() - start)

        _print_performance(snapshot.games_replayed, snapshot.skipped_game_ids, elapsed_times, snapshot.config_hash)
        board = await service.leaderboard(limit=args.top)
        _print_leaderboard(board.entries)
    finally:
        db.close()


def _print_performance(games: int, skipped: list[str], elapsed_times: list[float], config_hash: str) -> None:
    median_time = statistics.median(elapsed_times)
    print("=" * 60)
    print("REPLAY")
    print("=" * 60)
    print(f"Config hash: {config_hash[:16]}")
    print(f"Games replayed: {games}")
    print(f"Games skipped: {len(skipped)}")
    for game_id in skipped[:10]:
        print(f"  - {game_id}")
    print(f"Iterations: {len(elapsed_times)}")
    print(f"Median time: {median_time:.3f}s")
    if median_time > 0:
        print(f"Throughput: {games / median_time:.0f} games/sec (based on median)")
    if len(elapsed_times) > 1:
        print(f"All runs: {', '.join(f'{t:.3f}s' for t in elapsed_times)}")
    print()


def _print_leaderboard(entries: list[LeaderboardEntry]) -> None:
    print(f"{'#':>4}  {'points':>8}  {'games':>5}  {'rank':<12} player")
    for entry in entries:
        name = entry.nickname or entry.username
        print(f"{entry.position:>4}  {entry.total_points:>8}  {entry.games_played:>5}  {entry.current_rank:<12} {name}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay all games and print standings")
    parser.add_argument("--config-dir", type=Path, default=None, help="directory with game/ranks/achievements yaml")
    parser.add_argument("--database", type=Path, default=None, help="SQLite database path")
    parser.add_argument("--import-legacy", type=Path, default=None, help="legacy JSON data directory to import first")
    parser.add_argument("--iterations", type=int, default=1, help="number of timed replays")
    parser.add_argument("--batch-size", type=int, default=100, help="games per replay batch")
    parser.add_argument("--top", type=int, default=10, help="leaderboard rows to print")
    parser.add_argument("--verbose", action="store_true", help="show replay logs")
    args = parser.parse_args()
    if args.iterations < 1:
        parser.error("--iterations must be at least 1")

    setup_logging(level=logging.INFO if args.verbose else logging.CRITICAL, name="recompute")
    asyncio.run(recompute(args))


if __name__ == "__main__":
    main()
