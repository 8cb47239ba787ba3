"""
Leaderboard Service (Scorekeep 2025)

Purpose
-------
Request-facing API for score submission and leaderboard reads. Coordinates
the record store (durable truth), the RankStore (bounded Top-N boards) and
the RankCache (short-lived materialized lists).

Responsibilities
----------------
- Persist a submission, keeping the best score per player and category
- Reposition the player on every loaded board of the category
- Serve Top-N lists cache-first, loading boards lazily from storage
- Compute absolute ranks from storage, bypassing every in-memory view
- Administrative cache clearing

Consistency
-----------
A write is visible in ``get_top_n`` once its own call returns and the
category's cache entries are dropped. A lazy board load that overlaps a
write to its category is discarded and re-read, so a committed score is
never lost from a board. ``get_rank`` counts rows in storage, so it can
transiently disagree with a board under concurrent writes.

Usage
-----
    >>> result = await leaderboard.record_score(CategoryKey(1001), "p-1", 42.0,
    ...                                         {"nick_name": "Ann"})
    >>> result
    {'updated': True, 'new_rank': 1}
    >>> await leaderboard.get_top_n(CategoryKey(1001))
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from scorekeep.core.logging.logger import LogContext, get_logger
from scorekeep.modules.leaderboard.categories import PRIMARY_FIELD, CategoryKey, RankEntry
from scorekeep.modules.shared.base_service import BaseService
from scorekeep.modules.shared.exceptions import (
    NotFoundError,
    RecordRejectedError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from scorekeep.core.cache.rank_cache import RankCache
    from scorekeep.core.config.manager import ConfigManager
    from scorekeep.modules.leaderboard.categories import CategoryRules
    from scorekeep.modules.leaderboard.rank_store import RankStore
    from scorekeep.modules.records.repository import RecordStore

KeyLike = Union[CategoryKey, Tuple[int, int]]

MAX_LOAD_ATTEMPTS = 3


class LeaderboardService(BaseService):
    """
    Score submission and leaderboard reads.

    Args:
        store: Record store adapter
        rank_store: Shared Top-N boards
        cache: Shared read-through cache
        config_manager: Configuration manager
        logger: Optional logger override
    """

    def __init__(
        self,
        store: RecordStore,
        rank_store: RankStore,
        cache: RankCache,
        config_manager: ConfigManager,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, logger or get_logger(__name__))
        self.store = store
        self.ranks = rank_store
        self.cache = cache

    @property
    def rules(self) -> CategoryRules:
        return self.ranks.rules

    # ========================================================================
    # Writes
    # ========================================================================

    async def record_score(
        self,
        key: KeyLike,
        player_id: Optional[str],
        score: Any,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Persist a submission and update the in-memory views.

        Returns:
            ``{"updated": bool, "new_rank": int | None}`` where ``updated``
            tells whether the Top-N board changed and ``new_rank`` is the
            player's absolute rank in storage.

        Raises:
            RecordRejectedError: player or score missing; nothing is written
            ValidationError: malformed category key or non-numeric score
        """
        category = self._coerce_key(key)
        meta = dict(metadata or {})

        missing = [
            name
            for name, value in (("player_id", player_id), ("score", score))
            if value is None or value == ""
        ]
        if missing:
            self.log.warning(
                "Score submission rejected",
                extra={"category": str(category), "missing_fields": missing},
            )
            raise RecordRejectedError(missing, {"category": str(category)})

        numeric_score = self._coerce_number(score, "score")
        play_time = self._optional_number(meta.get("play_time"), "play_time")
        add_play_time = self._optional_number(meta.get("add_play_time"), "add_play_time")
        rule = self.rules.rule_for(category)
        ascending = rule.order.ascending

        async with LogContext(
            player_id=str(player_id), category=str(category), operation="record_score"
        ):
            result = await self.store.run_in_transaction(
                lambda session: self.store.upsert_record(
                    session,
                    category,
                    str(player_id),
                    score=numeric_score,
                    ascending=ascending,
                    nick_name=meta.get("nick_name"),
                    avatar_url=meta.get("avatar_url"),
                    app_id=meta.get("app_id"),
                    play_time=play_time,
                    add_play_time=add_play_time,
                )
            )
            record = result.record

            primary_loaded = self.ranks.is_loaded(category, PRIMARY_FIELD)
            updated = self.ranks.upsert(record)
            if not primary_loaded:
                # A freshly loaded board already reflects the committed row
                await self._ensure_board(category, PRIMARY_FIELD)
                in_board = self.ranks.position_of(category, record.player_id) is not None
                updated = updated or (in_board and result.changed)
            self.cache.invalidate_category(category)

            better = await self.store.count_better(
                category, PRIMARY_FIELD, record.score, ascending
            )
            new_rank = better + 1

            self.log_operation(
                "record_score",
                updated=updated,
                new_rank=new_rank,
                record_created=result.created,
                score_improved=result.score_improved,
            )

        return {"updated": updated, "new_rank": new_rank}

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_top_n(
        self,
        key: KeyLike,
        field: str = PRIMARY_FIELD,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Ordered Top-N rows, each ``{"rank", "player_id", "score", ...}``.

        Served from the cache when fresh, else from the board (loaded from
        storage on first use) and cached for the configured TTL.
        """
        category = self._coerce_key(key)
        self.rules.rule_for(category).order_for(field)
        if limit is not None:
            self.validate_positive_int(limit, "limit")

        cache_key = (category, field)
        payload = self.cache.get(cache_key)
        if payload is None:
            generation = self.ranks.generation(category)
            entries = await self._ensure_board(category, field)
            payload = [
                {"rank": position, **entry.to_dict()}
                for position, entry in enumerate(entries, start=1)
            ]
            # A write that landed during the load already invalidated this key
            if self.ranks.generation(category) == generation:
                self.cache.put(cache_key, payload)
            self.log.debug(
                "Leaderboard cache miss",
                extra={"category": str(category), "field": field, "size": len(payload)},
            )

        return payload[:limit] if limit is not None else payload

    async def get_rank(
        self,
        key: KeyLike,
        player_id: str,
        field: str = PRIMARY_FIELD,
    ) -> Dict[str, Any]:
        """
        Absolute rank of a player, always computed from storage.

        Raises:
            NotFoundError: the player has no record in this category
        """
        category = self._coerce_key(key)
        order = self.rules.rule_for(category).order_for(field)

        record = await self.store.find_record(category, player_id)
        if record is None:
            raise NotFoundError("GameRecord", f"{player_id}@{category}")

        value = getattr(record, field)
        better = await self.store.count_better(category, field, value, order.ascending)

        return {
            "player_id": record.player_id,
            "score": record.score,
            "play_time": record.play_time,
            "nick_name": record.nick_name,
            "avatar_url": record.avatar_url,
            "rank": better + 1,
        }

    # ========================================================================
    # Administration
    # ========================================================================

    def clear_caches(self) -> int:
        """
        Drop every cached list and loaded board.

        Boards reload from storage on the next read.

        Returns:
            Number of cache entries removed
        """
        cleared = self.cache.clear()
        boards = self.ranks.clear()
        self.log_operation("clear_caches", cache_entries=cleared, boards=boards)
        return cleared

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _ensure_board(self, category: CategoryKey, field: str) -> List[RankEntry]:
        if self.ranks.is_loaded(category, field):
            return self.ranks.top_n(category, field)

        ascending = self.rules.rule_for(category).order_for(field).ascending
        rows: List[Any] = []
        for attempt in range(1, MAX_LOAD_ATTEMPTS + 1):
            generation = self.ranks.generation(category)
            rows = await self.store.find_top_ordered(
                category, field, ascending, self.ranks.capacity
            )
            # Another task may have loaded the board while we awaited storage
            if self.ranks.is_loaded(category, field):
                return self.ranks.top_n(category, field)
            entries = self.ranks.load(category, field, rows, generation=generation)
            if entries is not None:
                return entries
            self.log.debug(
                "Board load raced a write; reloading",
                extra={"category": str(category), "field": field, "attempt": attempt},
            )

        # Serve the freshest read without installing it; the next read retries
        self.log.warning(
            "Board load kept racing writes; serving uninstalled rows",
            extra={"category": str(category), "field": field, "attempts": MAX_LOAD_ATTEMPTS},
        )
        return self.ranks.rank_rows(category, field, rows)

    @staticmethod
    def _coerce_key(key: KeyLike) -> CategoryKey:
        if isinstance(key, CategoryKey):
            return key
        if isinstance(key, (tuple, list)) and len(key) in (1, 2):
            return CategoryKey.of(*key)
        raise ValidationError("category", f"expected (game_type, sub_type), got {key!r}")

    @staticmethod
    def _coerce_number(value: Any, name: str) -> float:
        if isinstance(value, bool):
            raise ValidationError(name, f"{name} must be numeric, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(name, f"{name} must be numeric, got {value!r}") from None
        if not math.isfinite(number):
            raise ValidationError(name, f"{name} must be finite, got {value!r}")
        return number

    @classmethod
    def _optional_number(cls, value: Any, name: str) -> Optional[float]:
        return None if value is None else cls._coerce_number(value, name)
