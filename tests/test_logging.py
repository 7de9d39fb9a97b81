"""Tests for the structured logging system (vitalcheck_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from io import StringIO

import pytest

from vitalcheck_kernel.logging_config import (
    ConsoleFormatter,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


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
        assert record["logger"] == "vitalcheck.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("census_fetched", extra={"rows": 42, "task": "SYS"})

        record = _parse_log(stream)
        assert record["rows"] == 42
        assert record["task"] == "SYS"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(log_id=7, trigger="schedule")
        with LogContext.bind(phase="pull", window="15-1-22:0:0-4"):
            get_logger("test").info("phase_entered")

        record = _parse_log(stream)
        assert record["log_id"] == 7
        assert record["trigger"] == "schedule"
        assert record["phase"] == "pull"
        assert record["window"] == "15-1-22:0:0-4"

    def test_vitalcheck_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from vitalcheck_kernel.exceptions import ConvergenceError

        try:
            raise ConvergenceError("population", 5, 12)
        except ConvergenceError:
            get_logger("test").error("phase_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "CONVERGENCE_FAILED"
        assert record["exc_type"] == "ConvergenceError"
        assert record["exc_check"] == "population"
        assert record["exc_rounds"] == 5
        assert record["exc_pending"] == 12
        assert "traceback" in record

    def test_plain_exception_has_no_code(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record

    def test_dates_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("with_date", extra={"birth_date": date(1950, 3, 1)})
        assert _parse_log(stream)["birth_date"] == "1950-03-01"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="WARNING")
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_configure_is_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""


# ---------------------------------------------------------------------------
# ConsoleFormatter tests
# ---------------------------------------------------------------------------


class TestConsoleFormatter:
    def _line(self, ansi=False, **extra):
        stream = StringIO()
        configure_logging(fmt="console", stream=stream, color=ansi)
        get_logger("test").info("check_started", extra=extra)
        return stream.getvalue().strip()

    def test_task_tag_and_fields(self):
        line = self._line(task="CHECKPOP", pending=3)
        assert " | CHECKPOP | check_started" in line
        assert "pending=3" in line

    def test_default_task_is_sys(self):
        assert " | SYS | check_started" in self._line()

    def test_context_rendered(self):
        LogContext.set(log_id=11)
        assert "log_id=11" in self._line()

    def test_color_codes(self):
        line = self._line(ansi=True, task="LK", color="green")
        assert "\x1b[" in line
        assert "LK" in line

    def test_presentation_keys_not_rendered(self):
        line = self._line(task="LK", color="green")
        assert "task=" not in line
        assert "color=" not in line

    def test_values_with_spaces_quoted(self):
        formatter = ConsoleFormatter(color=False)
        record = logging.LogRecord("vitalcheck.test", logging.INFO, "", 0, "msg", (), None)
        record.error = "HTTP 503"
        assert 'error="HTTP 503"' in formatter.format(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(log_id=1, phase="pull")
        assert LogContext.get_all() == {"log_id": 1, "phase": "pull"}

    def test_clear(self):
        LogContext.set(log_id=1)
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(phase="outer")
        with LogContext.bind(phase="inner"):
            assert LogContext.get_all()["phase"] == "inner"
        assert LogContext.get_all()["phase"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(window="w"):
            assert LogContext.get_all()["window"] == "w"
        assert "window" not in LogContext.get_all()

    def test_unknown_fields_ignored_by_bind(self):
        with LogContext.bind(nonsense="x", trigger="manual"):
            assert LogContext.get_all() == {"trigger": "manual"}
