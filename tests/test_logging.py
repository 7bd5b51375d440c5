"""Tests for the structured logging system (worklog_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest

from worklog_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests; restore the suite's DEBUG config after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "worklog_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("week_closed", extra={"entry_count": 42, "report_key": "k"})

        record = _parse_log(stream)
        assert record["entry_count"] == 42
        assert record["report_key"] == "k"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(entry_id="abc-123", week_end="2024-03-08")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["entry_id"] == "abc-123"
        assert record["week_end"] == "2024-03-08"

    def test_worklog_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from worklog_kernel.exceptions import LockTimeoutError

        try:
            raise LockTimeoutError("worklog_store", 2.0)
        except LockTimeoutError:
            get_logger("test").error("lock_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "LOCK_TIMEOUT"
        assert record["exc_type"] == "LockTimeoutError"
        assert record["exc_scope"] == "worklog_store"
        assert record["exc_timeout_seconds"] == 2.0
        assert "traceback" in record

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "entry_id" not in record
        assert "actor_id" not in record

    def test_uuid_and_date_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("typed", extra={"adjustment_id": uid, "adjusts_week_end": date(2024, 3, 8)})

        record = _parse_log(stream)
        assert record["adjustment_id"] == str(uid)
        assert record["adjusts_week_end"] == "2024-03-08"

    def test_default_level_drops_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(entry_id="x", actor_id="T100")
        assert LogContext.get_all() == {"entry_id": "x", "actor_id": "T100"}

    def test_clear(self):
        LogContext.set(entry_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", week_end="2024-03-08"):
            assert LogContext.get_all() == {"actor_id": "inner", "week_end": "2024-03-08"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(correlation_id="c", entry_id="e1"):
            assert LogContext.get_all() == {"entry_id": "e1"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("worklog_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.week_close").name == "worklog_kernel.services.week_close"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "worklog_kernel.deep.nested.module"
