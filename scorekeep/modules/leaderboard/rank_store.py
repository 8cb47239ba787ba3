"""
RankStore: bounded, incrementally maintained Top-N boards.

Purpose
-------
Hold, per ``(CategoryKey, field)``, the best ``capacity`` entries in
category order plus a player -> entry index, and reposition entries as
new scores arrive instead of recomputing from storage on every write.

Design Notes
------------
- Boards are populated lazily: an unloaded board is filled by ``load()``
  on first read (pull-through from storage). ``upsert()`` leaves unloaded
  boards alone so a partial board is never mistaken for a full one.
- After any change the board (at most ``capacity`` entries) is fully
  re-sorted. ``list.sort`` is stable, so ties keep the first-inserted
  occupant ahead and an equal newcomer never evicts anyone.
- Every public method is synchronous. A board mutation completes without
  a suspension point, so interleaved readers never see a half-sorted list.
- Each category carries a generation that moves on every applied record,
  eviction and clear. A load started under an older generation read
  storage before that change and is discarded instead of installed.
- Absolute ranks outside the board come from storage (see
  ``LeaderboardService.get_rank``); this class only knows its Top-N.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import Logger
from typing import Any, Dict, Iterable, List, Optional, Tuple

from scorekeep.core.logging.logger import get_logger
from scorekeep.modules.leaderboard.categories import (
    CategoryKey,
    CategoryRule,
    CategoryRules,
    RankEntry,
)

BoardKey = Tuple[CategoryKey, str]
Generation = Tuple[int, int]

REQUIRED_FIELDS = ("player_id", "game_type", "score")


def missing_required_fields(record: Any) -> List[str]:
    """Names of required fields that are absent or empty on ``record``."""
    missing = []
    for name in REQUIRED_FIELDS:
        value = getattr(record, name, None)
        if value is None or (name == "player_id" and value == ""):
            missing.append(name)
    return missing


def snapshot_of(record: Any) -> RankEntry:
    """Copy the rank-relevant fields of a GameRecord-like object."""
    return RankEntry(
        player_id=str(record.player_id),
        score=float(record.score),
        play_time=float(getattr(record, "play_time", None) or 0.0),
        nick_name=getattr(record, "nick_name", None) or "",
        avatar_url=getattr(record, "avatar_url", None) or "",
        updated_at=getattr(record, "updated_at", None),
    )


@dataclass
class _Board:
    field_name: str
    descending: bool
    capacity: int
    entries: List[RankEntry] = field(default_factory=list)
    index: Dict[str, RankEntry] = field(default_factory=dict)

    def resort(self) -> None:
        self.entries.sort(key=lambda e: e.value(self.field_name), reverse=self.descending)

    def worst(self) -> Optional[RankEntry]:
        return self.entries[-1] if self.entries else None

    def replace_entry(self, old: RankEntry, new: RankEntry) -> None:
        slot = self.entries.index(old)
        self.entries[slot] = new
        self.index[new.player_id] = new

    def append(self, entry: RankEntry) -> None:
        self.entries.append(entry)
        self.index[entry.player_id] = entry

    def remove(self, entry: RankEntry) -> None:
        self.entries.remove(entry)
        self.index.pop(entry.player_id, None)


class RankStore:
    """
    Owned in-memory Top-N state, constructed once and injected.

    Args:
        rules: Category ordering rules
        capacity: Maximum entries per board (Top-N)
        logger: Optional logger override
    """

    def __init__(
        self,
        rules: CategoryRules,
        capacity: int = 100,
        logger: Optional[Logger] = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.rules = rules
        self.capacity = capacity
        self.log = logger or get_logger(__name__)
        self._boards: Dict[BoardKey, _Board] = {}
        self._generations: Dict[CategoryKey, int] = {}
        self._epoch = 0

    # ------------------------------------------------------------------ reads

    def is_loaded(self, key: CategoryKey, field_name: str = "score") -> bool:
        return (key, field_name) in self._boards

    def top_n(self, key: CategoryKey, field_name: str = "score") -> List[RankEntry]:
        """Ordered copy of the board; empty when not loaded."""
        board = self._boards.get((key, field_name))
        return list(board.entries) if board else []

    def position_of(
        self, key: CategoryKey, player_id: str, field_name: str = "score"
    ) -> Optional[int]:
        """1-based position inside the board, None when absent."""
        board = self._boards.get((key, field_name))
        if board is None or player_id not in board.index:
            return None
        return board.entries.index(board.index[player_id]) + 1

    def loaded_boards(self) -> List[BoardKey]:
        return list(self._boards.keys())

    def generation(self, key: CategoryKey) -> Generation:
        """Opaque token that changes whenever the category's boards may have."""
        return (self._epoch, self._generations.get(key, 0))

    def rank_rows(self, key: CategoryKey, field_name: str, rows: Iterable[Any]) -> List[RankEntry]:
        """Order storage rows the way ``load`` would, without installing them."""
        return list(self._build_board(key, field_name, rows).entries)

    # -------------------------------------------------------------- mutations

    def load(
        self,
        key: CategoryKey,
        field_name: str,
        rows: Iterable[Any],
        generation: Optional[Generation] = None,
    ) -> Optional[List[RankEntry]]:
        """
        Replace a board with rows already ordered by storage.

        Rows lacking required fields are skipped; at most ``capacity`` rows
        are kept and duplicates of a player keep the first occurrence.

        Args:
            generation: ``generation(key)`` taken before the rows were read.
                When the category moved on since, nothing is installed.

        Returns:
            The installed entries, or None when the rows were stale
        """
        board = self._build_board(key, field_name, rows)

        if generation is not None and generation != self.generation(key):
            self.log.debug(
                "Rank board load discarded; category changed during read",
                extra={"category": str(key), "field": field_name},
            )
            return None

        self._boards[(key, field_name)] = board

        self.log.debug(
            "Rank board loaded",
            extra={"category": str(key), "field": field_name, "size": len(board.entries)},
        )
        return list(board.entries)

    def upsert(self, record: Any) -> bool:
        """
        Apply one record to every loaded board of its category.

        Returns:
            True when at least one board changed
        """
        missing = missing_required_fields(record)
        if missing:
            self.log.warning(
                "Rank store ignored record with missing fields",
                extra={
                    "missing_fields": missing,
                    "player_id": getattr(record, "player_id", None),
                },
            )
            return False

        key = CategoryKey.of(record.game_type, getattr(record, "sub_type", 0))
        entry = snapshot_of(record)
        rule = self.rules.rule_for(key)
        self._bump(key)

        changed = False
        for field_name in rule.fields:
            board = self._boards.get((key, field_name))
            if board is None:
                continue
            if self._apply(board, rule, entry):
                changed = True
        return changed

    def evict(self, key: CategoryKey) -> int:
        """Drop every board of a category; returns boards dropped."""
        self._bump(key)
        doomed = [board_key for board_key in self._boards if board_key[0] == key]
        for board_key in doomed:
            del self._boards[board_key]
        return len(doomed)

    def clear(self) -> int:
        self._epoch += 1
        count = len(self._boards)
        self._boards.clear()
        return count

    # ---------------------------------------------------------------- helpers

    def _bump(self, key: CategoryKey) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1

    def _build_board(self, key: CategoryKey, field_name: str, rows: Iterable[Any]) -> _Board:
        board = self._new_board(self.rules.rule_for(key), field_name)
        for row in rows:
            if len(board.entries) >= self.capacity:
                break
            if missing_required_fields(row):
                continue
            entry = snapshot_of(row)
            if entry.player_id in board.index:
                continue
            board.append(entry)
        board.resort()
        return board

    def _new_board(self, rule: CategoryRule, field_name: str) -> _Board:
        return _Board(
            field_name=field_name,
            descending=not rule.order_for(field_name).ascending,
            capacity=self.capacity,
        )

    def _apply(self, board: _Board, rule: CategoryRule, entry: RankEntry) -> bool:
        field_name = board.field_name
        current = board.index.get(entry.player_id)

        if current is not None:
            if current == entry:
                return False
            board.replace_entry(current, entry)
            board.resort()
            return True

        if len(board.entries) < board.capacity:
            board.append(entry)
            board.resort()
            return True

        worst = board.worst()
        assert worst is not None
        if not rule.is_better(field_name, entry.value(field_name), worst.value(field_name)):
            return False

        board.remove(worst)
        board.append(entry)
        board.resort()

        self.log.debug(
            "Rank board evicted worst entry",
            extra={
                "field": field_name,
                "evicted_player": worst.player_id,
                "player_id": entry.player_id,
            },
        )
        return True

