import pytest

from ranking.cache import RecomputationCache
from ranking.defaults import default_achievements
from ranking.exceptions import InvalidGameSubmissionError, InvalidScoreSumError
from ranking.service import ScoringService
from ranking.settings import GameConfig
from ranking.tests.conftest import PLAYERS, create_game, create_user
from shared.dal import InMemoryUserRepository

REFERENCE_SCORES = [42000, 31000, 18000, 9000]


class TestSubmitGame:
    async def test_records_game_with_calculated_positions(self, service, game_repo):
        submission = await service.submit_game(PLAYERS, [9000, 42000, 18000, 31000])

        assert [c.position for c in submission.calculations] == [4, 1, 3, 2]
        assert [p.position for p in submission.game.players] == [4, 1, 3, 2]
        assert submission.game.player_ids == list(PLAYERS)
        assert submission.game.game_type == "hanchan"
        assert await game_repo.find_by_id(submission.game.game_id) == submission.game

    async def test_new_players_are_protected(self, service):
        submission = await service.submit_game(PLAYERS, REFERENCE_SCORES)
        assert [c.rank_points for c in submission.calculations] == [37, 16, 0, 0]
        assert [c.original_rank_points for c in submission.calculations] == [37, 16, -7, -26]

    async def test_uses_cached_standings_as_pre_game_points(self, service, game_repo):
        for i in range(25):
            await game_repo.append(create_game(f"up{i}", [9000, 18000, 42000, 31000], minutes=i))

        submission = await service.submit_game(PLAYERS, REFERENCE_SCORES)

        carol = submission.calculations[2]
        assert not carol.is_newbie_protected
        assert carol.rank_points == -7

    async def test_invalidates_cache_before_returning(self, service, cache):
        await cache.get_or_compute()
        await service.submit_game(PLAYERS, REFERENCE_SCORES)

        stats = await cache.get_user_stats("alice")

        assert stats.total_points == 37
        assert stats.games_played == 1
        assert cache.replay_count == 2

    async def test_custom_game_type(self, service):
        submission = await service.submit_game(PLAYERS, REFERENCE_SCORES, "tonpuu")
        assert submission.game.game_type == "tonpuu"

    async def test_reports_achievements(self, service, provider):
        provider.update(achievements=default_achievements())
        await service.submit_game(PLAYERS, REFERENCE_SCORES)

        submission = await service.submit_game(PLAYERS, REFERENCE_SCORES)

        assert {a.achievement_id for a in submission.achievements["alice"]} == {"crushing_win", "win_streak_2"}
        assert [a.achievement_id for a in submission.achievements["dave"]] == ["lose_streak_2"]
        assert submission.achievements["carol"] == []

    @pytest.mark.parametrize(
        ("players", "match"),
        [
            (["alice", "bob", "carol"], "exactly 4 players"),
            (["alice", "alice", "carol", "dave"], "one seat"),
            (["alice", "bob", "carol", "mallory"], "unknown player: mallory"),
        ],
    )
    async def test_rejects_bad_player_lists(self, service, game_repo, players, match):
        with pytest.raises(InvalidGameSubmissionError, match=match):
            await service.submit_game(players, REFERENCE_SCORES)
        assert await game_repo.list_all() == []

    async def test_rejects_wrong_total(self, service, game_repo):
        with pytest.raises(InvalidScoreSumError):
            await service.submit_game(PLAYERS, [42000, 31000, 18000, 8000])
        assert await game_repo.list_all() == []

    async def test_total_follows_configuration(self, service, provider):
        provider.update(game=GameConfig(total_points=120000, base_points=30000))
        submission = await service.submit_game(PLAYERS, [45000, 35000, 25000, 15000])
        assert submission.calculations[0].rank_points == 35


class TestLeaderboard:
    @pytest.fixture
    async def played(self, service, provider):
        provider.update(game=GameConfig(newbie_protection_max_rank=0))
        await service.submit_game(PLAYERS, REFERENCE_SCORES)
        await service.submit_game(PLAYERS, [31000, 42000, 18000, 9000])
        return service

    async def test_sorted_by_points(self, played):
        board = await played.leaderboard()

        assert [e.user_id for e in board.entries] == ["alice", "bob", "carol", "dave"]
        assert [e.total_points for e in board.entries] == [53, 53, -14, -52]
        assert [e.position for e in board.entries] == [1, 2, 3, 4]
        assert board.total == 4
        assert board.major_ranks[0] == "雀之气"

    async def test_offset_and_limit(self, played):
        board = await played.leaderboard(limit=2, offset=1)
        assert [e.user_id for e in board.entries] == ["bob", "carol"]
        assert [e.position for e in board.entries] == [2, 3]
        assert board.total == 4

    async def test_major_rank_filter(self, played, user_repo):
        await user_repo.create_user(create_user("erin", nickname="Erin"))
        board = await played.leaderboard(major_rank="雀之气")
        assert board.total == 5
        assert board.entries[-1].user_id == "dave"

        assert (await played.leaderboard(major_rank="雀帝")).entries == []

    async def test_includes_users_without_games(self, played, user_repo):
        await user_repo.create_user(create_user("erin", nickname="Erin"))
        board = await played.leaderboard()
        erin = next(e for e in board.entries if e.user_id == "erin")
        assert erin.total_points == 0
        assert erin.games_played == 0
        assert erin.nickname == "Erin"
        assert erin.position == 3


class TestRankDistribution:
    async def test_counts(self, service, game_repo):
        for i in range(10):
            await game_repo.append(create_game(f"g{i}", REFERENCE_SCORES, minutes=i))

        distribution = await service.rank_distribution()

        # alice 370, bob 160, carol and dave held at 0 by protection
        assert distribution.total_users == 4
        assert distribution.total_games == 40
        assert distribution.major_rank_counts == {"雀之气": 4}
        assert distribution.rank_counts == {"雀之气四段": 1, "雀之气二段": 1, "雀之气一段": 2}
        assert distribution.average_points == 132

    async def test_no_users(self, provider, game_repo):
        users = InMemoryUserRepository()
        cache = RecomputationCache(provider, game_repo, users)
        distribution = await ScoringService(cache, game_repo, users, provider).rank_distribution()
        assert distribution.total_users == 0
        assert distribution.average_points == 0
        assert distribution.major_rank_counts == {}


class TestUserQueries:
    async def test_profile(self, service):
        await service.submit_game(PLAYERS, REFERENCE_SCORES)
        profile = await service.user_profile("alice")
        assert profile.user.user_id == "alice"
        assert profile.stats.total_points == 37
        assert profile.rank.display_name == "雀之气一段"
        assert profile.rank.minor_rank == 1

    async def test_profile_of_unknown_user(self, service):
        assert await service.user_profile("ghost") is None

    async def test_history_is_newest_first(self, service):
        first = await service.submit_game(PLAYERS, REFERENCE_SCORES)
        second = await service.submit_game(PLAYERS, [31000, 42000, 18000, 9000])

        history = await service.user_history("alice")

        assert [h.game_id for h in history] == [second.game.game_id, first.game.game_id]
        assert history[0].points_before == 37

    async def test_history_limit(self, service):
        for _ in range(3):
            await service.submit_game(PLAYERS, REFERENCE_SCORES)
        assert len(await service.user_history("bob", limit=2)) == 2


class TestGameDetail:
    async def test_entries_for_each_seat(self, service):
        submission = await service.submit_game(PLAYERS, REFERENCE_SCORES)

        detail = await service.game_detail(submission.game.game_id)

        assert detail.game == submission.game
        assert list(detail.entries) == list(PLAYERS)
        assert detail.entries["alice"].points_change == 37
        assert detail.entries["dave"].is_newbie_protected

    async def test_unknown_game(self, service):
        assert await service.game_detail("missing") is None

    async def test_skipped_game_has_no_entries(self, service, provider, game_repo):
        await game_repo.append(create_game("old", REFERENCE_SCORES))
        provider.update(game=GameConfig(total_points=120000))

        detail = await service.game_detail("old")

        assert detail.entries == dict.fromkeys(PLAYERS)


class TestListGames:
    async def test_newest_first_with_player_names(self, service, user_repo):
        await user_repo.update_user("alice", nickname="Alice")
        first = await service.submit_game(PLAYERS, REFERENCE_SCORES)
        second = await service.submit_game(PLAYERS, [31000, 42000, 18000, 9000])

        listing = await service.list_games()

        assert [s.game.game_id for s in listing.games] == [second.game.game_id, first.game.game_id]
        assert listing.total == 2
        assert listing.games[0].player_names == ["Alice", "bob", "carol", "dave"]
        assert listing.games[0].game.scores == [31000, 42000, 18000, 9000]

    async def test_offset_and_limit(self, service, game_repo):
        for i in range(5):
            await game_repo.append(create_game(f"g{i}", REFERENCE_SCORES, minutes=i))

        listing = await service.list_games(limit=2, offset=1)

        assert [s.game.game_id for s in listing.games] == ["g3", "g2"]
        assert listing.total == 5

    async def test_includes_games_the_current_config_skips(self, service, provider, game_repo):
        await game_repo.append(create_game("old", REFERENCE_SCORES))
        provider.update(game=GameConfig(total_points=120000))

        listing = await service.list_games()

        assert [s.game.game_id for s in listing.games] == ["old"]

    async def test_unknown_user_falls_back_to_id(self, service, game_repo):
        await game_repo.append(create_game("g0", REFERENCE_SCORES, players=["alice", "bob", "carol", "ghost"]))
        listing = await service.list_games()
        assert listing.games[0].player_names[-1] == "ghost"
