"""
Pytest Configuration and Fixtures for Scorekeep Tests
======================================================

Purpose
-------
Shared fixtures for the unit and integration suites.

Responsibilities
----------------
- Force the testing environment before any scorekeep module loads
- In-memory record store implementing the adapter contract (unit tests)
- Injectable clocks for cache expiry and retention cutoffs
- Testcontainers PostgreSQL for integration tests (skipped without Docker)

Architecture Notes
------------------
- Unit tests never touch a database; the fake store mirrors the ordering,
  watermark and keep-best rules of the SQLAlchemy adapter.
- Integration fixtures initialize DatabaseService against the container
  and truncate every table between tests.
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_COLORS", "false")

import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Generator, Iterable, List, Optional, Set, Type

import pytest
import pytest_asyncio

from scorekeep.core.config.manager import ConfigManager
from scorekeep.core.database.base import Base
from scorekeep.core.logging.logger import get_logger
from scorekeep.database.models import GameRecord, PlayerProfile, ShareReward
from scorekeep.modules.leaderboard.categories import CategoryKey, CategoryRules
from scorekeep.modules.records.repository import UpsertResult, Watermark

logger = get_logger(__name__)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# CLOCKS
# ============================================================================


class FakeClock:
    """Monotonic seconds that only move when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateClock:
    """Wall-clock datetimes that only move when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


# ============================================================================
# IN-MEMORY RECORD STORE
# ============================================================================


class InMemoryRecordStore:
    """
    Record store contract over plain lists.

    ``fail_on`` names a method that raises once called, to exercise
    rollback paths. ``run_in_transaction`` restores every table on error.
    """

    managed_models = (GameRecord, PlayerProfile, ShareReward)

    def __init__(self, clock: FakeDateClock) -> None:
        self.clock = clock
        self.tables: Dict[Type[Base], List[Any]] = {model: [] for model in self.managed_models}
        self._ids = itertools.count(1)
        self.fail_on: Optional[str] = None
        self.calls: Dict[str, int] = {}
        self.transactions = 0
        self.rollbacks = 0

    # -- helpers -----------------------------------------------------------

    def _track(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.fail_on == name:
            raise RuntimeError(f"injected failure in {name}")

    def add(self, model: Type[Base], **fields: Any) -> Any:
        fields.setdefault("updated_at", self.clock())
        fields.setdefault("created_at", fields["updated_at"])
        row = model(id=next(self._ids), **fields)
        self.tables[model].append(row)
        return row

    def add_game_record(
        self,
        player_id: str,
        score: float,
        key: CategoryKey = CategoryKey(1001, 0),
        **fields: Any,
    ) -> GameRecord:
        fields.setdefault("play_time", 0.0)
        fields.setdefault("nick_name", player_id)
        fields.setdefault("avatar_url", "")
        fields.setdefault("app_id", "")
        return self.add(
            GameRecord,
            player_id=player_id,
            game_type=key.game_type,
            sub_type=key.sub_type,
            score=score,
            **fields,
        )

    def add_player(self, player_id: str, updated_at: Optional[datetime] = None) -> PlayerProfile:
        fields: Dict[str, Any] = {"player_id": player_id, "nick_name": player_id}
        if updated_at is not None:
            fields["updated_at"] = updated_at
        return self.add(PlayerProfile, **fields)

    def count(self, model: Type[Base]) -> int:
        return len(self.tables[model])

    def player_ids(self, model: Type[Base]) -> Set[str]:
        return {row.player_id for row in self.tables[model]}

    def _category_rows(self, key: CategoryKey) -> List[GameRecord]:
        return [
            row
            for row in self.tables[GameRecord]
            if row.game_type == key.game_type and row.sub_type == key.sub_type
        ]

    @staticmethod
    def _age_key(row: Any) -> tuple:
        return (row.updated_at, row.id)

    @staticmethod
    def _board_fields(row: GameRecord) -> tuple:
        return (row.score, row.play_time, row.nick_name, row.avatar_url)

    # -- contract ----------------------------------------------------------

    async def run_in_transaction(self, fn: Callable[[Any], Awaitable[Any]]) -> Any:
        self.transactions += 1
        snapshot = {model: list(rows) for model, rows in self.tables.items()}
        session = object()
        try:
            return await fn(session)
        except Exception:
            self.tables = snapshot
            self.rollbacks += 1
            raise

    async def find_top_ordered(
        self, key: CategoryKey, order_field: str, ascending: bool, limit: int
    ) -> List[GameRecord]:
        self._track("find_top_ordered")
        rows = self._category_rows(key)
        rows.sort(key=lambda r: (r.created_at, r.id))
        rows.sort(key=lambda r: getattr(r, order_field), reverse=not ascending)
        return rows[:limit]

    async def find_record(self, key: CategoryKey, player_id: str) -> Optional[GameRecord]:
        self._track("find_record")
        for row in self._category_rows(key):
            if row.player_id == player_id:
                return row
        return None

    async def count_better(
        self, key: CategoryKey, order_field: str, value: float, ascending: bool
    ) -> int:
        self._track("count_better")
        values = [getattr(row, order_field) for row in self._category_rows(key)]
        if ascending:
            return sum(1 for v in values if v < value)
        return sum(1 for v in values if v > value)

    async def upsert_record(
        self,
        session: Any,
        key: CategoryKey,
        player_id: str,
        *,
        score: float,
        ascending: bool,
        nick_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        app_id: Optional[str] = None,
        play_time: Optional[float] = None,
        add_play_time: Optional[float] = None,
    ) -> UpsertResult:
        self._track("upsert_record")
        existing = None
        for row in self._category_rows(key):
            if row.player_id == player_id:
                existing = row
        before = None if existing is None else self._board_fields(existing)
        if existing is None:
            record = self.add_game_record(
                player_id,
                score,
                key,
                nick_name=nick_name or "",
                avatar_url=avatar_url or "",
                app_id=app_id or "",
            )
            created, improved = True, True
        else:
            record = existing
            created = False
            improved = score < record.score if ascending else score > record.score
            if improved:
                record.score = score
            if nick_name is not None:
                record.nick_name = nick_name
            if avatar_url is not None:
                record.avatar_url = avatar_url
            record.updated_at = self.clock()
        if play_time is not None:
            record.play_time = play_time
        elif add_play_time:
            record.play_time = (record.play_time or 0.0) + add_play_time
        changed = before is None or before != self._board_fields(record)
        return UpsertResult(
            record=record, created=created, score_improved=improved, changed=changed
        )

    async def count_all(self, model: Type[Base]) -> int:
        self._track("count_all")
        return len(self.tables[model])

    async def find_oldest_boundary(self, model: Type[Base], offset: int) -> Optional[Watermark]:
        self._track("find_oldest_boundary")
        rows = sorted(self.tables[model], key=self._age_key)
        if offset >= len(rows):
            return None
        row = rows[offset]
        return Watermark(updated_at=row.updated_at, id=row.id)

    async def delete_older_than(
        self, session: Any, model: Type[Base], watermark: Watermark, batch_limit: int
    ) -> int:
        self._track("delete_older_than")
        boundary = (watermark.updated_at, watermark.id)
        doomed = sorted(
            (row for row in self.tables[model] if self._age_key(row) < boundary),
            key=self._age_key,
        )[:batch_limit]
        doomed_ids = {row.id for row in doomed}
        self.tables[model] = [row for row in self.tables[model] if row.id not in doomed_ids]
        return len(doomed)

    async def delete_players(
        self, session: Any, model: Type[Base], player_ids: Iterable[str]
    ) -> int:
        self._track("delete_players")
        targets = set(player_ids)
        before = len(self.tables[model])
        self.tables[model] = [row for row in self.tables[model] if row.player_id not in targets]
        return before - len(self.tables[model])

    async def find_active_players(self, since: datetime) -> Set[str]:
        self._track("find_active_players")
        return {row.player_id for row in self.tables[GameRecord] if row.updated_at >= since}

    async def find_all_players(self) -> Set[str]:
        self._track("find_all_players")
        players: Set[str] = set()
        for model in self.managed_models:
            players |= self.player_ids(model)
        return players


# ============================================================================
# UNIT FIXTURES
# ============================================================================

TEST_CONFIG: Dict[str, Any] = {
    "leaderboards": {
        "default_order": "desc",
        "categories": [
            {"game_type": 1001, "order": "asc", "secondary": {"play_time": "desc"}},
            {"game_type": 2001, "sub_type": 3, "order": "asc"},
        ],
    },
    "retention": {
        "inactivity_days": 15,
        "batch_size": 100,
        "batch_pause_ms": 0,
        "zombie_guard_table": "player_profiles",
        "max_rows": {
            "game_records": 50000,
            "player_profiles": 10000,
            "share_rewards": 10000,
        },
    },
}


@pytest.fixture
def config_manager() -> ConfigManager:
    return ConfigManager(copy.deepcopy(TEST_CONFIG))


@pytest.fixture
def category_rules(config_manager: ConfigManager) -> CategoryRules:
    return CategoryRules.from_config(config_manager)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def date_clock() -> FakeDateClock:
    return FakeDateClock()


@pytest.fixture
def record_store(date_clock: FakeDateClock) -> InMemoryRecordStore:
    return InMemoryRecordStore(date_clock)


@pytest.fixture
def no_sleep(mocker):
    """Awaitable pause that records requested delays without waiting."""
    return mocker.AsyncMock(return_value=None)


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str, None, None]:
    """
    Start a PostgreSQL testcontainer and yield its asyncpg URL.

    Scope: session (container persists across all tests)
    Skips the requesting tests when Docker is unavailable.
    """
    try:
        from testcontainers.postgres import PostgresContainer
    except ImportError:
        pytest.skip("testcontainers is not installed")

    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker unavailable for PostgreSQL testcontainer: {exc}")

    url = container.get_connection_url()
    logger.info("PostgreSQL testcontainer started", extra={"url": url})

    yield url

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def database(postgres_url: str):
    """
    Initialize DatabaseService against the container with a clean schema.

    Scope: function (tables truncated before each test)
    """
    from sqlalchemy import text

    from scorekeep.core.database.service import DatabaseService

    await DatabaseService.initialize(postgres_url)
    await DatabaseService.create_schema()
    async with DatabaseService.get_transaction() as session:
        await session.execute(
            text("TRUNCATE game_records, player_profiles, share_rewards RESTART IDENTITY")
        )

    yield DatabaseService

    await DatabaseService.shutdown()
