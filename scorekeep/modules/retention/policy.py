"""
Retention policy, run state and bookkeeping types.

The policy is rebuilt from configuration at the start of every run, so
changes to ``retention.*`` take effect without a restart. Defaults come
from ``Config`` (environment) and are overridden by the YAML layer::

    retention:
      inactivity_days: 15
      batch_size: 100
      batch_pause_ms: 50
      zombie_guard_table: player_profiles
      max_rows:
        game_records: 50000
        player_profiles: 10000
        share_rewards: 10000
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Deque, Dict, Mapping, Optional, Tuple, Type

from scorekeep.core.config.config import Config
from scorekeep.core.database.base import Base
from scorekeep.database.models import GameRecord, PlayerProfile, ShareReward
from scorekeep.modules.shared.exceptions import ConfigurationError

if TYPE_CHECKING:
    from scorekeep.core.config.manager import ConfigManager

# Deletion order for a zombie: gameplay rows first, then profile, then rewards
TABLE_MODELS: Dict[str, Type[Base]] = {
    GameRecord.__tablename__: GameRecord,
    PlayerProfile.__tablename__: PlayerProfile,
    ShareReward.__tablename__: ShareReward,
}

HISTORY_SIZE = 20


class RetentionState(str, Enum):
    IDLE = "idle"
    DETECT_ZOMBIES = "detect_zombies"
    BATCH_DELETE = "batch_delete"
    SIZE_CAP_CHECK = "size_cap_check"
    BATCH_DELETE_EXCESS = "batch_delete_excess"


@dataclass(frozen=True)
class TablePolicy:
    table: str
    model: Type[Base]
    max_rows: Optional[int] = None


@dataclass(frozen=True)
class RetentionPolicy:
    """Per-table caps plus the player inactivity threshold."""

    inactivity: timedelta
    batch_size: int
    batch_pause_seconds: float
    tables: Tuple[TablePolicy, ...]
    zombie_guard_table: Optional[str] = PlayerProfile.__tablename__

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "RetentionPolicy":
        inactivity_days = _positive_int(
            config_manager.get("retention.inactivity_days", Config.RETENTION_INACTIVITY_DAYS),
            "retention.inactivity_days",
        )
        batch_size = _positive_int(
            config_manager.get("retention.batch_size", Config.RETENTION_BATCH_SIZE),
            "retention.batch_size",
        )
        pause_ms = config_manager.get("retention.batch_pause_ms", Config.RETENTION_BATCH_PAUSE_MS)
        if not isinstance(pause_ms, (int, float)) or isinstance(pause_ms, bool) or pause_ms < 0:
            raise ConfigurationError(
                "retention.batch_pause_ms", f"retention.batch_pause_ms must be >= 0, got {pause_ms!r}"
            )

        caps: Mapping[str, Any] = config_manager.get("retention.max_rows", {}) or {}
        unknown = set(caps) - set(TABLE_MODELS)
        if unknown:
            raise ConfigurationError(
                "retention.max_rows", f"Unknown tables in retention.max_rows: {sorted(unknown)}"
            )

        tables = tuple(
            TablePolicy(
                table=name,
                model=model,
                max_rows=(
                    None
                    if caps.get(name) is None
                    else _positive_int(caps[name], f"retention.max_rows.{name}")
                ),
            )
            for name, model in TABLE_MODELS.items()
        )

        guard = config_manager.get("retention.zombie_guard_table", PlayerProfile.__tablename__)
        if guard is not None and guard not in TABLE_MODELS:
            raise ConfigurationError(
                "retention.zombie_guard_table", f"Unknown guard table {guard!r}"
            )

        return cls(
            inactivity=timedelta(days=inactivity_days),
            batch_size=batch_size,
            batch_pause_seconds=pause_ms / 1000.0,
            tables=tables,
            zombie_guard_table=guard,
        )

    def table(self, name: str) -> TablePolicy:
        for policy in self.tables:
            if policy.table == name:
                return policy
        raise KeyError(name)

    def capped_tables(self) -> Tuple[TablePolicy, ...]:
        return tuple(policy for policy in self.tables if policy.max_rows is not None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inactivity_days": self.inactivity.days,
            "batch_size": self.batch_size,
            "batch_pause_ms": int(self.batch_pause_seconds * 1000),
            "zombie_guard_table": self.zombie_guard_table,
            "max_rows": {policy.table: policy.max_rows for policy in self.tables},
        }


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(key, f"{key} must be a positive integer, got {value!r}")
    return value


@dataclass(frozen=True)
class TableSize:
    table: str
    current: int
    max_rows: Optional[int]

    @property
    def exceeded(self) -> bool:
        return self.max_rows is not None and self.current > self.max_rows

    @property
    def percentage(self) -> Optional[float]:
        if not self.max_rows:
            return None
        return round(self.current / self.max_rows * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "max": self.max_rows,
            "exceeded": self.exceeded,
            "percentage": self.percentage,
        }


@dataclass
class CleanupReport:
    """Outcome of one retention run."""

    started_at: datetime
    forced: bool
    finished_at: Optional[datetime] = None
    zombie_pass_skipped: bool = False
    zombie_players: int = 0
    zombie_rows: Dict[str, int] = field(default_factory=dict)
    excess_rows: Dict[str, int] = field(default_factory=dict)

    @property
    def removed(self) -> int:
        return sum(self.zombie_rows.values()) + sum(self.excess_rows.values())

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        data["removed"] = self.removed
        data["duration_seconds"] = self.duration_seconds
        return data


@dataclass
class CleanupStats:
    """Process-local counters, mutated only by the retention engine."""

    last_run: Optional[datetime] = None
    total_removed: int = 0
    last_removed: int = 0
    errors: int = 0
    runs: int = 0
    last_error: Optional[str] = None
    history: Deque[Dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=HISTORY_SIZE)
    )

    def record_success(self, report: CleanupReport) -> None:
        self.runs += 1
        self.last_run = report.finished_at or report.started_at
        self.last_removed = report.removed
        self.total_removed += report.removed
        self.history.append(report.to_dict())

    def record_failure(self, when: datetime, error: BaseException) -> None:
        self.runs += 1
        self.errors += 1
        self.last_run = when
        self.last_removed = 0
        self.last_error = f"{type(error).__name__}: {error}"
        self.history.append(
            {"started_at": when.isoformat(), "error": self.last_error, "removed": 0}
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "total_removed": self.total_removed,
            "last_removed": self.last_removed,
            "errors": self.errors,
            "runs": self.runs,
            "last_error": self.last_error,
            "recent_runs": list(self.history),
        }
