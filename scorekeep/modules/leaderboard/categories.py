"""
Category keys, ordering rules and rank-entry projections.

A leaderboard is identified by a ``CategoryKey`` ``(game_type, sub_type)``.
Each category ranks on ``score`` and may declare secondary fields (for
example ``play_time``) that get their own independent board. Direction is
per field: time-attack categories rank ascending (lower is better), the
rest descending.

Rules come from ConfigManager under ``leaderboards``::

    leaderboards:
      default_order: desc
      categories:
        - game_type: 1001
          order: asc
          secondary:
            play_time: desc
        - game_type: 2001
          sub_type: 3
          order: asc

An entry without ``sub_type`` applies to every sub type of its game type;
an exact ``(game_type, sub_type)`` entry wins over it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple

from scorekeep.modules.shared.exceptions import ConfigurationError, ValidationError

if TYPE_CHECKING:
    from scorekeep.core.config.manager import ConfigManager

PRIMARY_FIELD = "score"
RANKABLE_FIELDS = frozenset({"score", "play_time"})


class SortOrder(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    @classmethod
    def parse(cls, raw: Any, key: str) -> "SortOrder":
        value = str(raw).strip().lower()
        if value in ("asc", "ascending"):
            return cls.ASCENDING
        if value in ("desc", "descending"):
            return cls.DESCENDING
        raise ConfigurationError(key, f"Unknown sort order {raw!r} for {key}")

    @property
    def ascending(self) -> bool:
        return self is SortOrder.ASCENDING


@dataclass(frozen=True, order=True)
class CategoryKey:
    """Identifies one independent leaderboard."""

    game_type: int
    sub_type: int = 0

    @classmethod
    def of(cls, game_type: Any, sub_type: Any = 0) -> "CategoryKey":
        """Build a key from caller input, rejecting non-integers."""
        try:
            gt = int(game_type)
            st = int(sub_type if sub_type is not None else 0)
        except (TypeError, ValueError):
            raise ValidationError(
                "category", f"game_type/sub_type must be integers, got {game_type!r}/{sub_type!r}"
            ) from None
        return cls(gt, st)

    def __str__(self) -> str:
        return f"{self.game_type}:{self.sub_type}"


@dataclass(frozen=True)
class CategoryRule:
    order: SortOrder = SortOrder.DESCENDING
    secondary: Mapping[str, SortOrder] = field(default_factory=dict)

    @property
    def fields(self) -> Tuple[str, ...]:
        return (PRIMARY_FIELD, *self.secondary.keys())

    def order_for(self, field_name: str) -> SortOrder:
        if field_name == PRIMARY_FIELD:
            return self.order
        if field_name in self.secondary:
            return self.secondary[field_name]
        raise ValidationError("field", f"{field_name!r} is not ranked for this category")

    def is_better(self, field_name: str, candidate: float, incumbent: float) -> bool:
        """Strict comparison; equal values are never better."""
        if self.order_for(field_name).ascending:
            return candidate < incumbent
        return candidate > incumbent


class CategoryRules:
    """Resolves the ``CategoryRule`` for any key."""

    def __init__(
        self,
        default: Optional[CategoryRule] = None,
        exact: Optional[Dict[CategoryKey, CategoryRule]] = None,
        by_game_type: Optional[Dict[int, CategoryRule]] = None,
    ) -> None:
        self.default = default or CategoryRule()
        self._exact = dict(exact or {})
        self._by_game_type = dict(by_game_type or {})

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "CategoryRules":
        default = CategoryRule(
            order=SortOrder.parse(
                config_manager.get("leaderboards.default_order", "desc"),
                "leaderboards.default_order",
            )
        )
        exact: Dict[CategoryKey, CategoryRule] = {}
        by_game_type: Dict[int, CategoryRule] = {}

        for index, raw in enumerate(config_manager.get("leaderboards.categories", []) or []):
            config_key = f"leaderboards.categories[{index}]"
            if not isinstance(raw, dict) or "game_type" not in raw:
                raise ConfigurationError(config_key, f"{config_key} needs a game_type")

            secondary: Dict[str, SortOrder] = {}
            for field_name, order in (raw.get("secondary") or {}).items():
                if field_name not in RANKABLE_FIELDS or field_name == PRIMARY_FIELD:
                    raise ConfigurationError(
                        config_key, f"{config_key}: cannot rank on {field_name!r}"
                    )
                secondary[field_name] = SortOrder.parse(order, f"{config_key}.secondary")

            rule = CategoryRule(
                order=SortOrder.parse(raw.get("order", default.order.value), config_key),
                secondary=secondary,
            )
            if raw.get("sub_type") is None:
                by_game_type[int(raw["game_type"])] = rule
            else:
                exact[CategoryKey(int(raw["game_type"]), int(raw["sub_type"]))] = rule

        return cls(default=default, exact=exact, by_game_type=by_game_type)

    def rule_for(self, key: CategoryKey) -> CategoryRule:
        if key in self._exact:
            return self._exact[key]
        return self._by_game_type.get(key.game_type, self.default)


@dataclass(frozen=True)
class RankEntry:
    """Read-only snapshot of a GameRecord held by a board."""

    player_id: str
    score: float
    play_time: float = 0.0
    nick_name: str = ""
    avatar_url: str = ""
    updated_at: Optional[datetime] = field(default=None, compare=False)

    def value(self, field_name: str) -> float:
        return getattr(self, field_name)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("updated_at")
        return data
