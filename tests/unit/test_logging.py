"""
Unit tests for the structured logging helpers.
"""

import json
import logging

import pytest

from scorekeep.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
)


def make_record(**extra):
    record = logging.LogRecord(
        name="scorekeep.leaderboard",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Score recorded",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLogContext:
    def test_context_enriches_records(self):
        record = make_record()

        with LogContext(player_id="p-1", category="1001:0", operation="record_score"):
            ContextFilter().filter(record)

        assert record.player_id == "p-1"
        assert record.category == "1001:0"
        assert record.operation == "record_score"
        assert record.correlation_id != "N/A"

    def test_explicit_extra_wins(self):
        record = make_record(operation="clear_caches")

        with LogContext(operation="retention_run"):
            ContextFilter().filter(record)

        assert record.operation == "clear_caches"

    def test_context_resets_on_exit(self):
        with LogContext(player_id="p-1"):
            pass
        record = make_record()

        ContextFilter().filter(record)

        assert record.player_id == "N/A"
        assert record.component == "leaderboard"

    async def test_async_context_manager(self):
        record = make_record()

        async with LogContext(component="retention"):
            ContextFilter().filter(record)

        assert record.component == "retention"

    def test_clear_log_context_drops_fields(self):
        """Clearing discards context set without a matching exit."""
        LogContext(player_id="p-9").__enter__()
        clear_log_context()
        record = make_record()

        ContextFilter().filter(record)

        assert record.player_id == "N/A"


@pytest.mark.unit
def test_json_formatter_includes_extra_fields():
    record = make_record(new_rank=3)
    with LogContext(player_id="p-1"):
        ContextFilter().filter(record)

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Score recorded"
    assert payload["player_id"] == "p-1"
    assert payload["extra"] == {"new_rank": 3}
    assert "category" not in payload
