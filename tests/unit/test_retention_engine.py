"""
Unit tests for RetentionEngine.

Tests zombie detection and deletion, the guard-table skip, size-cap
trimming to exactly the configured maximum, batching, failure handling
and the run state machine. Uses the in-memory record store from conftest.
"""

from datetime import timedelta

import pytest

from scorekeep.database.models import GameRecord, PlayerProfile, ShareReward
from scorekeep.modules.leaderboard.categories import CategoryKey
from scorekeep.modules.retention.engine import RetentionEngine
from scorekeep.modules.retention.policy import RetentionState
from scorekeep.modules.shared.exceptions import RetentionRunError


@pytest.fixture
def engine(record_store, config_manager, date_clock, no_sleep) -> RetentionEngine:
    return RetentionEngine(record_store, config_manager, clock=date_clock, sleep=no_sleep)


def seed_player(store, player_id, last_played, key=CategoryKey(1001, 0)):
    store.add_game_record(player_id, 50.0, key, updated_at=last_played)
    store.add_player(player_id, updated_at=last_played)
    store.add(ShareReward, player_id=player_id, share_count=1, updated_at=last_played)


@pytest.mark.unit
class TestZombieDetection:
    """Who counts as a zombie."""

    async def test_inactive_player_is_zombie(self, engine, record_store, date_clock):
        """No game record updated within 15 days marks a zombie."""
        seed_player(record_store, "stale", date_clock.now - timedelta(days=16))
        seed_player(record_store, "fresh", date_clock.now - timedelta(days=14))

        zombies = await engine.detect_zombies()

        assert zombies == ["stale"]

    async def test_any_recent_category_keeps_player_alive(self, engine, record_store, date_clock):
        old = date_clock.now - timedelta(days=40)
        record_store.add_game_record("p", 1.0, CategoryKey(1001, 0), updated_at=old)
        record_store.add_game_record("p", 1.0, CategoryKey(1002, 0), updated_at=date_clock.now)

        assert await engine.detect_zombies() == []

    async def test_profile_without_records_is_zombie(self, engine, record_store):
        """Players known only through other tables have no recent activity."""
        record_store.add_player("lurker")

        assert await engine.detect_zombies() == ["lurker"]


@pytest.mark.unit
class TestZombiePass:
    """Deleting zombies across dependent tables."""

    async def test_forced_run_deletes_zombies_everywhere(self, engine, record_store, date_clock):
        # Arrange
        seed_player(record_store, "stale", date_clock.now - timedelta(days=30))
        seed_player(record_store, "fresh", date_clock.now)

        # Act
        report = await engine.run(force=True)

        # Assert
        assert report.zombie_players == 1
        assert report.zombie_rows == {"game_records": 1, "player_profiles": 1, "share_rewards": 1}
        for model in (GameRecord, PlayerProfile, ShareReward):
            assert record_store.player_ids(model) == {"fresh"}

    async def test_guard_within_cap_skips_automatic_pass(self, engine, record_store, date_clock):
        """Automatic runs leave zombies alone while profiles are under cap."""
        seed_player(record_store, "stale", date_clock.now - timedelta(days=30))

        report = await engine.run(force=False)

        assert report.zombie_pass_skipped is True
        assert record_store.player_ids(PlayerProfile) == {"stale"}

    async def test_guard_over_cap_runs_automatic_pass(
        self, engine, record_store, config_manager, date_clock
    ):
        config_manager.set("retention.max_rows.player_profiles", 1)
        seed_player(record_store, "stale", date_clock.now - timedelta(days=30))
        seed_player(record_store, "fresh", date_clock.now)

        report = await engine.run()

        assert report.zombie_pass_skipped is False
        assert record_store.player_ids(PlayerProfile) == {"fresh"}

    async def test_zombie_batches_pause_between_batches(
        self, engine, record_store, config_manager, date_clock, no_sleep
    ):
        config_manager.set("retention.batch_size", 2)
        config_manager.set("retention.batch_pause_ms", 50)
        for i in range(5):
            seed_player(record_store, f"z{i}", date_clock.now - timedelta(days=20))

        report = await engine.run(force=True)

        assert report.zombie_rows["game_records"] == 5
        assert record_store.calls["delete_players"] == 3 * 3
        assert [call.args for call in no_sleep.await_args_list] == [(0.05,), (0.05,)]
        assert record_store.transactions == 1

    async def test_every_table_is_deleted_in_batches(
        self, engine, record_store, config_manager, date_clock, mocker
    ):
        """No delete names more than ``batch_size`` players."""
        # Arrange
        config_manager.set("retention.batch_size", 2)
        for i in range(5):
            seed_player(record_store, f"z{i}", date_clock.now - timedelta(days=20))
        sizes = {}
        original = record_store.delete_players

        async def recording(session, model, player_ids):
            sizes.setdefault(model, []).append(len(player_ids))
            return await original(session, model, player_ids)

        mocker.patch.object(record_store, "delete_players", side_effect=recording)

        # Act
        report = await engine.run(force=True)

        # Assert
        assert sizes == {GameRecord: [2, 2, 1], PlayerProfile: [2, 2, 1], ShareReward: [2, 2, 1]}
        assert report.zombie_rows == {"game_records": 5, "player_profiles": 5, "share_rewards": 5}

    async def test_second_forced_run_finds_no_zombies(self, engine, record_store, date_clock):
        """A forced pass leaves nothing for an immediate second pass."""
        # Arrange
        stale = date_clock.now - timedelta(days=30)
        seed_player(record_store, "stale", stale)
        record_store.add_player("profile-only", updated_at=stale)
        record_store.add(ShareReward, player_id="reward-only", share_count=2, updated_at=stale)
        record_store.add_game_record("records-only", 9.0, updated_at=stale)
        seed_player(record_store, "fresh", date_clock.now)

        # Act
        first = await engine.run(force=True)
        second = await engine.run(force=True)

        # Assert
        assert first.zombie_players == 4
        assert first.zombie_rows == {"game_records": 2, "player_profiles": 2, "share_rewards": 2}
        assert second.zombie_players == 0
        assert second.removed == 0
        assert await record_store.find_all_players() == {"fresh"}

    async def test_no_zombies_is_a_noop(self, engine, record_store, date_clock):
        seed_player(record_store, "fresh", date_clock.now)

        report = await engine.run(force=True)

        assert report.removed == 0
        assert record_store.transactions == 0


@pytest.mark.unit
class TestSizeCapPass:
    """Trimming tables down to their cap."""

    async def test_trims_to_exactly_max_rows(self, engine, record_store, config_manager, date_clock):
        """The oldest rows go and exactly ``max_rows`` remain."""
        # Arrange
        config_manager.set("retention.max_rows.share_rewards", 5)
        for i in range(8):
            record_store.add(
                ShareReward,
                player_id=f"p{i}",
                updated_at=date_clock.now - timedelta(hours=8 - i),
            )

        # Act
        report = await engine.run()

        # Assert
        assert report.excess_rows == {"share_rewards": 3}
        assert record_store.count(ShareReward) == 5
        assert record_store.player_ids(ShareReward) == {"p3", "p4", "p5", "p6", "p7"}

    async def test_equal_timestamps_break_ties_by_id(
        self, engine, record_store, config_manager, date_clock
    ):
        config_manager.set("retention.max_rows.share_rewards", 2)
        for i in range(4):
            record_store.add(ShareReward, player_id=f"p{i}", updated_at=date_clock.now)

        await engine.run()

        assert record_store.player_ids(ShareReward) == {"p2", "p3"}

    async def test_under_cap_is_a_noop(self, engine, record_store, config_manager):
        config_manager.set("retention.max_rows.share_rewards", 5)
        for i in range(5):
            record_store.add(ShareReward, player_id=f"p{i}")

        report = await engine.run()

        assert report.excess_rows == {}
        assert record_store.calls.get("delete_older_than") is None

    async def test_second_run_deletes_nothing(self, engine, record_store, config_manager):
        config_manager.set("retention.max_rows.share_rewards", 3)
        for i in range(7):
            record_store.add(ShareReward, player_id=f"p{i}")

        first = await engine.run()
        second = await engine.run()

        assert first.removed == 4
        assert second.removed == 0

    async def test_excess_is_deleted_in_paced_batches(
        self, engine, record_store, config_manager, no_sleep
    ):
        config_manager.set("retention.max_rows.share_rewards", 1)
        config_manager.set("retention.batch_size", 2)
        for i in range(6):
            record_store.add(ShareReward, player_id=f"p{i}")

        report = await engine.run()

        assert report.excess_rows == {"share_rewards": 5}
        assert record_store.calls["delete_older_than"] == 3
        assert no_sleep.await_count == 2


@pytest.mark.unit
class TestFailureHandling:
    """A failing run rolls back and reports."""

    async def test_failure_raises_and_counts_error(
        self, engine, record_store, date_clock
    ):
        seed_player(record_store, "stale", date_clock.now - timedelta(days=30))
        record_store.fail_on = "delete_players"

        with pytest.raises(RetentionRunError) as exc_info:
            await engine.run(force=True)

        assert exc_info.value.phase == RetentionState.BATCH_DELETE.value
        assert exc_info.value.is_retryable is True
        assert engine.stats.errors == 1
        assert engine.stats.last_error.startswith("RuntimeError")
        assert record_store.rollbacks == 1
        assert record_store.player_ids(PlayerProfile) == {"stale"}

    async def test_state_returns_to_idle_after_failure(self, engine, record_store):
        record_store.fail_on = "count_all"

        with pytest.raises(RetentionRunError):
            await engine.run()

        assert engine.state is RetentionState.IDLE
        assert engine.is_running is False

    async def test_next_run_recovers(self, engine, record_store, date_clock):
        seed_player(record_store, "stale", date_clock.now - timedelta(days=30))
        record_store.fail_on = "delete_players"
        with pytest.raises(RetentionRunError):
            await engine.run(force=True)

        record_store.fail_on = None
        report = await engine.run(force=True)

        assert report.zombie_players == 1
        assert engine.stats.runs == 2
        assert engine.stats.errors == 1


@pytest.mark.unit
class TestStatsAndSizes:
    async def test_stats_accumulate(self, engine, record_store, config_manager):
        config_manager.set("retention.max_rows.share_rewards", 1)
        for i in range(3):
            record_store.add(ShareReward, player_id=f"p{i}")

        await engine.run()
        snapshot = engine.stats.snapshot()

        assert snapshot["runs"] == 1
        assert snapshot["total_removed"] == 2
        assert snapshot["last_removed"] == 2
        assert len(snapshot["recent_runs"]) == 1
        assert engine.state is RetentionState.IDLE

    async def test_check_table_sizes(self, engine, record_store, config_manager):
        config_manager.set("retention.max_rows.share_rewards", 2)
        for i in range(3):
            record_store.add(ShareReward, player_id=f"p{i}")

        sizes = await engine.check_table_sizes()

        assert sizes["share_rewards"].to_dict() == {
            "current": 3,
            "max": 2,
            "exceeded": True,
            "percentage": 150.0,
        }
        assert sizes["game_records"].exceeded is False
