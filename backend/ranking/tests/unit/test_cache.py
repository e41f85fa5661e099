import asyncio

import pytest

from ranking.cache import CacheState, RecomputationCache
from ranking.config_provider import StaticConfigProvider
from ranking.defaults import default_achievements
from ranking.settings import GameConfig
from ranking.tests.conftest import PLAYERS, create_game, create_user, scoring_config
from shared.dal import InMemoryGameRepository, InMemoryUserRepository

REFERENCE_SCORES = [42000, 31000, 18000, 9000]


async def _add_games(game_repo, count: int, scores=REFERENCE_SCORES) -> None:
    for i in range(count):
        await game_repo.append(create_game(f"g{i}", scores, minutes=i))


class TestConstruction:
    def test_rejects_zero_batch_size(self, provider, game_repo, user_repo):
        with pytest.raises(ValueError, match="batch_size"):
            RecomputationCache(provider, game_repo, user_repo, batch_size=0)

    def test_starts_invalid(self, cache):
        assert cache.state == CacheState.INVALID
        assert cache.replay_count == 0
        assert cache.batch_size == 2


class TestReplay:
    async def test_empty_log(self, cache):
        snapshot = await cache.get_or_compute()
        assert snapshot.games_replayed == 0
        assert set(snapshot.user_stats) == set(PLAYERS)
        assert all(s.total_points == 0 for s in snapshot.user_stats.values())
        assert cache.state == CacheState.VALID

    async def test_newbie_protection_during_replay(self, cache, game_repo):
        await _add_games(game_repo, 2)

        stats = await cache.get_all_stats()

        assert stats["alice"].total_points == 74
        assert stats["alice"].wins == 2
        assert stats["alice"].average_position == 1.0
        assert stats["bob"].total_points == 32
        assert stats["carol"].total_points == 0
        assert stats["dave"].total_points == 0
        assert stats["dave"].games_played == 2

    async def test_history_chains_points(self, provider, cache, game_repo):
        provider.update(game=GameConfig(newbie_protection_max_rank=0))
        await _add_games(game_repo, 3)

        history = await cache.get_user_history("dave")

        assert [h.game_id for h in history] == ["g0", "g1", "g2"]
        assert [h.points_before for h in history] == [0, -26, -52]
        assert [h.points_after for h in history] == [-26, -52, -78]
        assert all(h.points_change == -26 for h in history)
        assert history[0].opponents == ["alice", "bob", "carol"]
        assert history[-1].rank_after == "雀之气一段"

    async def test_replays_in_chronological_order(self, provider, cache, game_repo):
        provider.update(game=GameConfig(newbie_protection_max_rank=0))
        await game_repo.append(create_game("late", [9000, 18000, 31000, 42000], minutes=10))
        await game_repo.append(create_game("early", REFERENCE_SCORES, minutes=0))

        history = await cache.get_user_history("alice")

        assert [h.game_id for h in history] == ["early", "late"]
        assert history[1].points_before == 37

    async def test_protection_stops_once_promoted(self, cache, game_repo):
        # carol climbs past tier 9 (900 points), then loses
        for i in range(25):
            await game_repo.append(create_game(f"up{i}", [9000, 18000, 42000, 31000], minutes=i))
        await game_repo.append(create_game("down", REFERENCE_SCORES, minutes=100))

        history = await cache.get_user_history("carol")

        assert history[-2].points_after == 925
        assert history[-1].rank_before == "一星雀者"
        assert not history[-1].is_newbie_protected
        assert history[-1].points_change == -7

    async def test_original_change_kept_when_protected(self, cache, game_repo):
        await _add_games(game_repo, 1)
        entry = (await cache.get_user_history("dave"))[0]
        assert entry.is_newbie_protected
        assert entry.points_change == 0
        assert entry.original_points_change == -26

    async def test_achievements_add_bonus(self, provider, cache, game_repo):
        provider.update(achievements=default_achievements())
        await _add_games(game_repo, 2)

        alice = await cache.get_user_history("alice")
        dave = await cache.get_user_history("dave")

        assert [a.achievement_id for a in alice[0].achievements] == ["crushing_win"]
        assert alice[0].points_change == 42
        assert {a.achievement_id for a in alice[1].achievements} == {"crushing_win", "win_streak_2"}
        assert alice[1].points_after == 86
        assert [a.achievement_id for a in dave[1].achievements] == ["lose_streak_2"]
        assert dave[1].points_change == 1
        assert dave[1].original_points_change == -25

    async def test_opponents_use_display_names(self, provider, game_repo):
        users = InMemoryUserRepository([create_user("alice", nickname="Alice"), create_user("bob")])
        cache = RecomputationCache(provider, game_repo, users)
        await _add_games(game_repo, 1)

        history = await cache.get_user_history("bob")

        # carol and dave have no user record; their ids are shown instead
        assert history[0].opponents == ["Alice", "carol", "dave"]
        assert set(await cache.get_all_stats()) == {"alice", "bob"}
        assert len(await cache.get_user_history("carol")) == 1

    async def test_unknown_user_gets_initial_standing(self, cache, game_repo):
        await _add_games(game_repo, 1)
        stats = await cache.get_user_stats("ghost")
        assert stats.total_points == 0
        assert stats.games_played == 0
        assert stats.current_rank == "雀之气一段"
        assert await cache.get_user_history("ghost") == []

    async def test_rank_points_within_tier(self, provider, cache, game_repo):
        provider.update(game=GameConfig(initial_points=250))
        stats = await cache.get_user_stats("alice")
        assert stats.rank_level == 3
        assert stats.rank_points == 50


class TestIdempotence:
    async def test_second_read_does_not_replay(self, cache, game_repo):
        await _add_games(game_repo, 3)

        first = await cache.get_or_compute()
        second = await cache.get_or_compute()

        assert first is second
        assert cache.replay_count == 1

    async def test_replay_is_deterministic(self, cache, game_repo):
        await _add_games(game_repo, 5)
        first = await cache.get_or_compute()
        cache.invalidate()
        second = await cache.get_or_compute()

        assert cache.replay_count == 2
        assert first.user_stats == second.user_stats
        assert first.point_histories == second.point_histories


class TestInvalidation:
    async def test_config_change_triggers_exactly_one_replay(self, provider, cache, game_repo):
        await _add_games(game_repo, 2)
        before = await cache.get_user_stats("alice")

        provider.update(game=GameConfig(uma_points=(30, 10, -10, -30)))
        assert cache.state == CacheState.INVALID

        after = await cache.get_user_stats("alice")
        await cache.get_user_stats("bob")

        assert cache.replay_count == 2
        assert before.total_points == 74
        assert after.total_points == 94

    async def test_tier_boundary_edit_moves_rank(self, provider, cache, game_repo):
        await _add_games(game_repo, 1)
        before = await cache.get_user_stats("alice")

        tiers = list(provider.get_rank_tiers())
        tiers[0] = tiers[0].model_copy(update={"max_points": 20})
        tiers[1] = tiers[1].model_copy(update={"min_points": 21})
        provider.update(ranks=tiers)
        after = await cache.get_user_stats("alice")

        assert cache.replay_count == 2
        assert (before.rank_level, before.current_rank) == (1, "雀之气一段")
        assert (after.rank_level, after.current_rank) == (2, "雀之气二段")
        assert after.rank_points == 16
        assert after.total_points == before.total_points == 37

    async def test_silent_config_change_is_detected_by_digest(self, game_repo, user_repo):
        class SilentProvider(StaticConfigProvider):
            def swap(self, config):
                self._config = config

        provider = SilentProvider(scoring_config())
        cache = RecomputationCache(provider, game_repo, user_repo)
        await _add_games(game_repo, 1)
        first = await cache.get_or_compute()

        provider.swap(scoring_config(newbie_protection_max_rank=0))
        second = await cache.get_or_compute()

        assert cache.replay_count == 2
        assert second.config_hash != first.config_hash
        assert second.user_stats["dave"].total_points == -26

    async def test_changed_total_skips_old_games(self, provider, cache, game_repo):
        await _add_games(game_repo, 3)
        await cache.get_or_compute()

        provider.update(game=GameConfig(total_points=120000))
        snapshot = await cache.get_or_compute()

        assert snapshot.skipped_game_ids == ["g0", "g1", "g2"]
        assert snapshot.games_replayed == 0
        assert snapshot.user_stats["alice"].total_points == 0
        assert snapshot.user_stats["alice"].games_played == 0
        assert snapshot.point_histories["alice"] == []

    async def test_skipped_game_does_not_block_later_games(self, provider, cache, game_repo):
        provider.update(game=GameConfig(total_points=120000))
        await game_repo.append(create_game("old", REFERENCE_SCORES))
        await game_repo.append(create_game("new", [45000, 35000, 25000, 15000], minutes=1))

        snapshot = await cache.get_or_compute()

        assert snapshot.skipped_game_ids == ["old"]
        assert snapshot.games_replayed == 1
        assert snapshot.user_stats["alice"].total_points == 40


class TestSingleFlight:
    async def test_concurrent_readers_share_one_replay(self, cache, game_repo):
        await _add_games(game_repo, 7)

        results = await asyncio.gather(*(cache.get_or_compute() for _ in range(10)))

        assert cache.replay_count == 1
        assert all(r is results[0] for r in results)

    async def test_state_is_computing_while_in_flight(self, cache, game_repo):
        await _add_games(game_repo, 7)

        reader = asyncio.create_task(cache.get_or_compute())
        await asyncio.sleep(0)
        assert cache.state == CacheState.COMPUTING

        await reader
        assert cache.state == CacheState.VALID

    async def test_invalidate_during_replay_discards_result(self, cache, game_repo):
        await _add_games(game_repo, 7)

        reader = asyncio.create_task(cache.get_or_compute())
        await asyncio.sleep(0)
        cache.invalidate()
        stale = await reader

        assert stale.games_replayed == 7
        assert cache.state == CacheState.INVALID

        await game_repo.append(create_game("g7", REFERENCE_SCORES, minutes=7))
        fresh = await cache.get_or_compute()
        assert fresh.games_replayed == 8
        assert cache.replay_count == 2

    async def test_cancelled_reader_does_not_cancel_replay(self, cache, game_repo):
        await _add_games(game_repo, 7)

        reader = asyncio.create_task(cache.get_or_compute())
        await asyncio.sleep(0)
        reader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await reader

        snapshot = await cache.get_or_compute()
        assert snapshot.games_replayed == 7
        assert cache.replay_count == 1


class TestBatching:
    @staticmethod
    async def _count_yields(cache: RecomputationCache) -> int:
        reader = asyncio.create_task(cache.get_or_compute())
        ticks = 0
        while not reader.done():
            ticks += 1
            await asyncio.sleep(0)
        await reader
        return ticks

    async def test_small_batches_yield_to_the_event_loop(self, provider, user_repo):
        game_repo = InMemoryGameRepository()
        await _add_games(game_repo, 9)

        single = await self._count_yields(RecomputationCache(provider, game_repo, user_repo, batch_size=1))
        whole = await self._count_yields(RecomputationCache(provider, game_repo, user_repo, batch_size=100))

        assert single > whole
