# CUI // SP-CTI
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

"""Tests for tools.log_migration.component_log."""

import io
import logging

import pytest

from tools.log_migration.component_log import LOGGER_PREFIX, ComponentLog


@pytest.fixture(autouse=True)
def _reset_stats():
    ComponentLog.reset_stats()
    yield
    ComponentLog.reset_stats()


def _records(caplog, name):
    return [r for r in caplog.records if r.name == name]


class TestLoggerNames:
    """Tests for per-component logger naming."""

    def test_logger_per_component(self):
        """Each tag logs through component.<lower tag>."""
        assert ComponentLog.get_logger("Storage").name == f"{LOGGER_PREFIX}.storage"
        assert ComponentLog.get_logger("CLI").name == "component.cli"


class TestPrintReplacement:
    """Tests for ComponentLog.log (the print() replacement)."""

    def test_values_joined_with_sep(self, caplog):
        """Values are joined like print() and logged at INFO."""
        with caplog.at_level(logging.INFO, logger="component.cli"):
            ComponentLog.log("CLI", "a", 1, None, sep="-")
        records = _records(caplog, "component.cli")
        assert len(records) == 1
        assert records[0].levelno == logging.INFO
        assert records[0].getMessage() == "a-1-None"

    def test_percent_signs_are_literal(self, caplog):
        """Message text is not treated as a format string."""
        with caplog.at_level(logging.INFO, logger="component.core"):
            ComponentLog.log("Core", "100%s done")
        assert _records(caplog, "component.core")[0].getMessage() == "100%s done"

    def test_stderr_logs_at_warning(self, caplog):
        """file=sys.stderr maps to WARNING."""
        with caplog.at_level(logging.INFO, logger="component.core"):
            ComponentLog.log("Core", "problem", file=sys.stderr)
        assert _records(caplog, "component.core")[0].levelno == logging.WARNING

    def test_non_console_file_is_written(self, caplog):
        """Output aimed at another file object is written there, not logged."""
        buffer = io.StringIO()
        with caplog.at_level(logging.DEBUG, logger="component.storage"):
            ComponentLog.log("Storage", "row", 3, file=buffer, end="")
        assert buffer.getvalue() == "row 3"
        assert _records(caplog, "component.storage") == []


class TestLoggingReplacement:
    """Tests for the logging-level methods."""

    @pytest.mark.parametrize("method,level", [
        ("debug", logging.DEBUG),
        ("info", logging.INFO),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
        ("critical", logging.CRITICAL),
    ])
    def test_levels(self, caplog, method, level):
        """Each method logs at its own level with %-style args."""
        with caplog.at_level(logging.DEBUG, logger="component.hooks"):
            getattr(ComponentLog, method)("Hooks", "value %d", 7)
        record = _records(caplog, "component.hooks")[0]
        assert record.levelno == level
        assert record.getMessage() == "value 7"

    def test_caller_attribution(self, caplog):
        """Records point at the calling function, not the facade."""
        with caplog.at_level(logging.INFO, logger="component.core"):
            ComponentLog.info("Core", "where am I")
        assert _records(caplog, "component.core")[0].funcName == "test_caller_attribution"

    def test_exception_includes_traceback(self, caplog):
        """exception() attaches exc_info."""
        with caplog.at_level(logging.ERROR, logger="component.core"):
            try:
                raise ValueError("bad")
            except ValueError:
                ComponentLog.exception("Core", "failed")
        record = _records(caplog, "component.core")[0]
        assert record.exc_info is not None
        assert record.exc_info[0] is ValueError

    def test_disabled_level_not_emitted(self, caplog):
        """Calls below the logger's level produce no record."""
        with caplog.at_level(logging.WARNING, logger="component.terminal"):
            ComponentLog.debug("Terminal", "noise")
        assert _records(caplog, "component.terminal") == []


class TestDebugIf:
    """Tests for conditional debug logging."""

    def test_false_condition_skips(self, caplog):
        """A falsy condition logs nothing."""
        with caplog.at_level(logging.DEBUG, logger="component.storage"):
            ComponentLog.debug_if("Storage", False, "hidden")
        assert _records(caplog, "component.storage") == []

    def test_callable_condition(self, caplog):
        """A callable condition is evaluated."""
        with caplog.at_level(logging.DEBUG, logger="component.storage"):
            ComponentLog.debug_if("Storage", lambda: True, "shown %s", "now")
        assert _records(caplog, "component.storage")[0].getMessage() == "shown now"


class TestUsageStats:
    """Tests for call counting."""

    def test_counts_by_method_and_component(self):
        """Calls are counted per method@component, even when not emitted."""
        ComponentLog.info("Core", "a")
        ComponentLog.info("Core", "b")
        ComponentLog.debug("Storage", "c")
        stats = ComponentLog.usage_stats()
        assert stats["info@Core"] == 2
        assert stats["debug@Storage"] == 1

    def test_reset(self):
        """reset_stats clears the counters."""
        ComponentLog.log("CLI", "x")
        ComponentLog.reset_stats()
        assert ComponentLog.usage_stats() == {}
