"""
Unit tests for log context propagation and structured formatting.
"""

import json
import logging
import sys

import pytest

from quizrank.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def _record(name: str = "quizrank.modules.ranking.service", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Quiz %s recorded",
        args=("q1",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLogContext:
    def test_context_is_scoped_to_block(self):
        with LogContext(user_id="u1", quiz_id="q1", operation="submit") as ctx:
            current = get_log_context()

            assert current["user_id"] == "u1"
            assert current["quiz_id"] == "q1"
            assert current["operation"] == "submit"
            assert current["correlation_id"] == ctx.context["correlation_id"]

        assert get_log_context() == {}

    def test_request_id_doubles_as_correlation_id(self):
        with LogContext(request_id="req-7"):
            current = get_log_context()

        assert current["correlation_id"] == "req-7"
        assert current["request_id"] == "req-7"

    async def test_async_context_manager(self):
        async with LogContext(user_id=42):
            assert get_log_context()["user_id"] == "42"

        assert get_log_context() == {}

    def test_set_log_context_merges(self):
        set_log_context(user_id="u1")
        set_log_context(operation="prune", retention=30)

        current = get_log_context()

        assert current["user_id"] == "u1"
        assert current["operation"] == "prune"
        assert current["retention"] == 30


@pytest.mark.unit
class TestContextFilter:
    def test_fills_fields_from_context(self):
        record = _record()

        with LogContext(user_id="u1", quiz_id="q1", correlation_id="abc"):
            ContextFilter().filter(record)

        assert record.user_id == "u1"
        assert record.quiz_id == "q1"
        assert record.correlation_id == "abc"
        assert record.component == "quizrank"
        assert record.operation == "N/A"

    def test_explicit_extra_wins(self):
        record = _record(user_id="explicit", operation="reset")

        with LogContext(user_id="ambient", operation="submit"):
            ContextFilter().filter(record)

        assert record.user_id == "explicit"
        assert record.operation == "reset"

    def test_defaults_without_context(self):
        record = _record()

        ContextFilter().filter(record)

        assert record.user_id == "N/A"
        assert record.correlation_id == "N/A"


@pytest.mark.unit
class TestJSONFormatter:
    def test_emits_context_and_extras(self):
        record = _record(position=3, total_points=70)
        with LogContext(user_id="u1", component="ranking"):
            ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Quiz q1 recorded"
        assert payload["level"] == "INFO"
        assert payload["user_id"] == "u1"
        assert payload["component"] == "ranking"
        assert "quiz_id" not in payload
        assert payload["extra"] == {"position": 3, "total_points": 70}

    def test_includes_exception_text(self):
        try:
            raise ValueError("broken")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))

        assert "ValueError: broken" in payload["exception"]
