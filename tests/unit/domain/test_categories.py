"""
Unit tests for category keys and ordering rules.
"""

import pytest

from scorekeep.core.config.manager import ConfigManager
from scorekeep.modules.leaderboard.categories import (
    CategoryKey,
    CategoryRule,
    CategoryRules,
    RankEntry,
    SortOrder,
)
from scorekeep.modules.shared.exceptions import ConfigurationError, ValidationError


@pytest.mark.unit
class TestCategoryKey:
    def test_of_coerces_integers(self):
        """String digits from callers become an integer key."""
        assert CategoryKey.of("1001", "2") == CategoryKey(1001, 2)

    def test_of_defaults_missing_sub_type(self):
        assert CategoryKey.of(1001, None) == CategoryKey(1001, 0)

    def test_of_rejects_garbage(self):
        with pytest.raises(ValidationError) as exc_info:
            CategoryKey.of("arcade", 0)

        assert exc_info.value.error_code == "VALIDATION_CATEGORY"

    def test_str_is_compact(self):
        assert str(CategoryKey(1001, 3)) == "1001:3"


@pytest.mark.unit
class TestSortOrder:
    @pytest.mark.parametrize(
        "raw,expected",
        [("asc", SortOrder.ASCENDING), ("DESC", SortOrder.DESCENDING), ("ascending", SortOrder.ASCENDING)],
    )
    def test_parse_accepts_aliases(self, raw, expected):
        assert SortOrder.parse(raw, "k") is expected

    def test_parse_rejects_unknown(self):
        with pytest.raises(ConfigurationError):
            SortOrder.parse("sideways", "leaderboards.default_order")


@pytest.mark.unit
class TestCategoryRule:
    def test_is_better_is_strict(self):
        """Equal values never count as an improvement."""
        rule = CategoryRule(order=SortOrder.DESCENDING)

        assert rule.is_better("score", 11, 10) is True
        assert rule.is_better("score", 10, 10) is False

    def test_ascending_prefers_lower(self):
        rule = CategoryRule(order=SortOrder.ASCENDING)

        assert rule.is_better("score", 42, 50) is True
        assert rule.is_better("score", 51, 50) is False

    def test_unranked_field_is_rejected(self):
        with pytest.raises(ValidationError):
            CategoryRule().order_for("play_time")


@pytest.mark.unit
class TestCategoryRules:
    """Resolving rules from configuration."""

    def test_game_type_rule_applies_to_every_sub_type(self, category_rules):
        rule = category_rules.rule_for(CategoryKey(1001, 7))

        assert rule.order is SortOrder.ASCENDING
        assert rule.fields == ("score", "play_time")

    def test_exact_rule_wins(self, category_rules):
        assert category_rules.rule_for(CategoryKey(2001, 3)).order is SortOrder.ASCENDING
        assert category_rules.rule_for(CategoryKey(2001, 0)).order is SortOrder.DESCENDING

    def test_unknown_category_uses_default(self, category_rules):
        assert category_rules.rule_for(CategoryKey(9999)).order is SortOrder.DESCENDING

    def test_secondary_on_unrankable_field_is_rejected(self):
        config = ConfigManager(
            {"leaderboards": {"categories": [{"game_type": 1, "secondary": {"nick_name": "asc"}}]}}
        )

        with pytest.raises(ConfigurationError):
            CategoryRules.from_config(config)

    def test_category_without_game_type_is_rejected(self):
        config = ConfigManager({"leaderboards": {"categories": [{"order": "asc"}]}})

        with pytest.raises(ConfigurationError):
            CategoryRules.from_config(config)


@pytest.mark.unit
def test_rank_entry_dict_hides_timestamp():
    """Serialized entries expose display fields only."""
    entry = RankEntry("p-1", 42.0, 120.0, "Ann", "http://a/1.png")

    assert entry.to_dict() == {
        "player_id": "p-1",
        "score": 42.0,
        "play_time": 120.0,
        "nick_name": "Ann",
        "avatar_url": "http://a/1.png",
    }
