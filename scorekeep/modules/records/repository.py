"""
Record Store Adapter

Purpose
-------
The only component that talks SQL. Exposes the ordered range queries,
counts, point lookups and batched deletes the leaderboard and retention
modules need, over the ``game_records``, ``player_profiles`` and
``share_rewards`` tables.

Design Notes
------------
- Reads open their own short session via ``DatabaseService.get_session()``.
- Writes and deletes take the caller's session: the caller owns the
  transaction (``run_in_transaction``) and decides its scope.
- Every method is a suspension point; callers must not hold in-memory
  board state across them.
- Top-N ties are broken by ``created_at`` then ``id``, so the
  first-inserted row keeps its place however often it is resubmitted.
- Retention orders by ``updated_at`` then ``id``, so the least recently
  active row goes first.
- Transient SQLAlchemy errors propagate unchanged; retrying is the
  caller's decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Type,
    TypeVar,
)

from sqlalchemy import and_, or_, select, union

from scorekeep.core.database.base import Base, utc_now
from scorekeep.core.database.service import DatabaseService
from scorekeep.core.logging.logger import get_logger
from scorekeep.database.models import GameRecord, PlayerProfile, ShareReward
from scorekeep.modules.shared.base_repository import BaseRepository
from scorekeep.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from scorekeep.modules.leaderboard.categories import CategoryKey

R = TypeVar("R")

ORDERABLE_FIELDS = ("score", "play_time")


def _board_fields(record: GameRecord) -> tuple:
    return (record.score, record.play_time, record.nick_name, record.avatar_url)


@dataclass(frozen=True)
class Watermark:
    """Boundary row of a size-capped table, ordered oldest first."""

    updated_at: datetime
    id: int


@dataclass
class UpsertResult:
    record: GameRecord
    created: bool
    score_improved: bool
    # Any field a board shows moved (always True for a new row)
    changed: bool = True


class RecordStore:
    """
    SQLAlchemy implementation of the record store contract.

    Args:
        database: Session provider (DatabaseService or a compatible class)
        logger: Optional logger override
    """

    managed_models: tuple[Type[Base], ...] = (GameRecord, PlayerProfile, ShareReward)

    def __init__(
        self,
        database: Type[DatabaseService] = DatabaseService,
        logger: Optional[Logger] = None,
    ) -> None:
        self.db = database
        self.log = logger or get_logger(__name__)
        self._repos: Dict[Type[Base], BaseRepository[Any]] = {
            model: BaseRepository(model, self.log) for model in self.managed_models
        }

    def _repo(self, model: Type[Base]) -> BaseRepository[Any]:
        try:
            return self._repos[model]
        except KeyError:
            raise ValidationError("model", f"{model!r} is not managed by the record store") from None

    @staticmethod
    def _order_column(order_field: str) -> Any:
        if order_field not in ORDERABLE_FIELDS:
            raise ValidationError("order_field", f"cannot order by {order_field!r}")
        return getattr(GameRecord, order_field)

    @staticmethod
    def _category_filter(key: CategoryKey) -> list[Any]:
        return [GameRecord.game_type == key.game_type, GameRecord.sub_type == key.sub_type]

    # ========================================================================
    # Transactions
    # ========================================================================

    async def run_in_transaction(self, fn: Callable[[AsyncSession], Awaitable[R]]) -> R:
        """Run ``fn(session)`` inside one atomic transaction."""
        async with self.db.get_transaction() as session:
            return await fn(session)

    # ========================================================================
    # Leaderboard Queries
    # ========================================================================

    async def find_top_ordered(
        self,
        key: CategoryKey,
        order_field: str,
        ascending: bool,
        limit: int,
    ) -> List[GameRecord]:
        column = self._order_column(order_field)
        primary = column.asc() if ascending else column.desc()

        async with self.db.get_session() as session:
            return await self._repo(GameRecord).find_many_where(
                session,
                *self._category_filter(key),
                order_by=(primary, GameRecord.created_at.asc(), GameRecord.id.asc()),
                limit=limit,
            )

    async def find_record(self, key: CategoryKey, player_id: str) -> Optional[GameRecord]:
        async with self.db.get_session() as session:
            return await self._repo(GameRecord).find_one_where(
                session,
                *self._category_filter(key),
                GameRecord.player_id == player_id,
            )

    async def count_better(
        self,
        key: CategoryKey,
        order_field: str,
        value: float,
        ascending: bool,
    ) -> int:
        """Rows in the category strictly better than ``value``."""
        column = self._order_column(order_field)
        predicate = column < value if ascending else column > value

        async with self.db.get_session() as session:
            return await self._repo(GameRecord).count_where(
                session, *self._category_filter(key), predicate
            )

    async def upsert_record(
        self,
        session: AsyncSession,
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
        """
        Insert or update the single row of ``player_id`` in ``key``.

        The stored score only moves when the new one is strictly better
        under the category order; display fields and play time always
        refresh. The row is locked for the rest of the transaction.
        """
        record = await self._repo(GameRecord).find_one_where(
            session,
            *self._category_filter(key),
            GameRecord.player_id == player_id,
            for_update=True,
        )

        created = record is None
        before = None if record is None else _board_fields(record)
        if record is None:
            record = GameRecord(
                player_id=player_id,
                game_type=key.game_type,
                sub_type=key.sub_type,
                app_id=app_id or "",
                score=score,
                play_time=0.0,
                nick_name=nick_name or "",
                avatar_url=avatar_url or "",
            )
            session.add(record)
            improved = True
        else:
            improved = score < record.score if ascending else score > record.score
            if improved:
                record.score = score
            if nick_name is not None:
                record.nick_name = nick_name
            if avatar_url is not None:
                record.avatar_url = avatar_url
            if app_id:
                record.app_id = app_id
            # Every submission is activity, improved or not
            record.updated_at = utc_now()

        if play_time is not None:
            record.play_time = float(play_time)
        elif add_play_time:
            record.play_time = float(record.play_time or 0.0) + float(add_play_time)

        await session.flush()
        changed = before is None or before != _board_fields(record)

        self.log.debug(
            "Game record upserted",
            extra={
                "player_id": player_id,
                "category": str(key),
                "record_created": created,
                "score_improved": improved,
            },
        )
        return UpsertResult(
            record=record, created=created, score_improved=improved, changed=changed
        )

    # ========================================================================
    # Retention Queries
    # ========================================================================

    async def count_all(self, model: Type[Base]) -> int:
        async with self.db.get_session() as session:
            return await self._repo(model).count_where(session)

    async def find_oldest_boundary(self, model: Type[Base], offset: int) -> Optional[Watermark]:
        """
        Row at ``offset`` when ordered oldest first by ``(updated_at, id)``.

        With ``offset = count - max_rows`` this is the oldest row that
        survives a size-cap pass.
        """
        stmt = (
            select(model.updated_at, model.id)  # type: ignore[attr-defined]
            .order_by(model.updated_at.asc(), model.id.asc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(1)
        )
        async with self.db.get_session() as session:
            row = (await session.execute(stmt)).first()

        if row is None:
            return None
        return Watermark(updated_at=row[0], id=int(row[1]))

    async def delete_older_than(
        self,
        session: AsyncSession,
        model: Type[Base],
        watermark: Watermark,
        batch_limit: int,
    ) -> int:
        """Delete at most ``batch_limit`` of the oldest rows before ``watermark``."""
        older = or_(
            model.updated_at < watermark.updated_at,  # type: ignore[attr-defined]
            and_(
                model.updated_at == watermark.updated_at,  # type: ignore[attr-defined]
                model.id < watermark.id,  # type: ignore[attr-defined]
            ),
        )
        repo = self._repo(model)
        ids = await repo.select_ids_where(
            session,
            older,
            order_by=(model.updated_at.asc(), model.id.asc()),  # type: ignore[attr-defined]
            limit=batch_limit,
        )
        return await repo.delete_ids(session, ids)

    async def delete_players(
        self,
        session: AsyncSession,
        model: Type[Base],
        player_ids: Iterable[str],
    ) -> int:
        ids = list(player_ids)
        if not ids:
            return 0
        return await self._repo(model).delete_where(
            session, model.player_id.in_(ids)  # type: ignore[attr-defined]
        )

    async def find_active_players(self, since: datetime) -> Set[str]:
        """Players with at least one game record updated at or after ``since``."""
        stmt = select(GameRecord.player_id).where(GameRecord.updated_at >= since).distinct()
        async with self.db.get_session() as session:
            return set((await session.execute(stmt)).scalars().all())

    async def find_all_players(self) -> Set[str]:
        """Every player holding a row in any managed table."""
        stmt = union(
            *(select(model.player_id) for model in self.managed_models)  # type: ignore[attr-defined]
        )
        async with self.db.get_session() as session:
            return set((await session.execute(stmt)).scalars().all())
