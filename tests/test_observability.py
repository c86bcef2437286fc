"""Tests for the observability module.

Tests for metrics collection, operation tracing and logging configuration.
"""
import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from cardnote.observability import (
    MetricsCollector,
    configure_logging,
    timed_operation,
    traced,
)


@pytest.fixture
def collector():
    """A fresh collector swapped in for the global one."""
    collector = MetricsCollector()
    with patch('cardnote.observability.metrics', collector):
        yield collector


@pytest.fixture
def clean_logger():
    """Remove handlers added to the cardnote logger during a test."""
    logger = logging.getLogger("cardnote")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_record_successful_operation(self):
        collector = MetricsCollector()
        collector.record_operation("sync_references", 12.5, success=True)
        collector.record_operation("sync_references", 7.5, success=True)
        m = collector.get_metrics()["sync_references"]
        assert m["calls"] == 2
        assert m["failures"] == 0
        assert m["avg_ms"] == 10.0
        assert m["slowest_ms"] == 12.5
        assert m["last_error"] is None

    def test_record_failed_operation(self):
        collector = MetricsCollector()
        collector.record_operation("save_card", 3.0, success=False, error="nope")
        m = collector.get_metrics()["save_card"]
        assert m["failures"] == 1
        assert m["last_error"] == "nope"

    def test_format_report(self):
        collector = MetricsCollector()
        collector.record_operation("sync_references", 2.0, success=True)
        collector.record_operation("save_card", 4.0, success=False, error="gone")
        lines = collector.format_report().splitlines()
        assert lines == [
            "save_card: 1 call(s), 1 failed, avg 4.00ms, slowest 4.00ms, last error: gone",
            "sync_references: 1 call(s), 0 failed, avg 2.00ms, slowest 2.00ms",
        ]

    def test_empty_report(self):
        assert MetricsCollector().format_report() == ""


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_records_success(self, collector):
        with timed_operation("test_op", card_id=1) as op:
            op["token_count"] = 2
        assert collector.get_metrics()["test_op"]["calls"] == 1

    def test_records_failure(self, collector):
        with pytest.raises(ValueError):
            with timed_operation("test_op"):
                raise ValueError("Test error")
        m = collector.get_metrics()["test_op"]
        assert m["failures"] == 1
        assert "Test error" in m["last_error"]


class TestTraced:
    """Tests for the traced decorator."""

    def test_traces_plain_function(self, collector):
        @traced("plain_op")
        def work(card_id):
            return [1, 2]

        assert work(card_id=4) == [1, 2]
        assert collector.get_metrics()["plain_op"]["calls"] == 1

    @pytest.mark.anyio
    async def test_traces_coroutine_function(self, collector):
        @traced()
        async def async_work(source_card_id):
            return source_card_id * 2

        assert await async_work(source_card_id=3) == 6
        assert collector.get_metrics()["async_work"]["calls"] == 1

    @pytest.mark.anyio
    async def test_coroutine_failure_propagates(self, collector):
        @traced("failing_op")
        async def failing():
            raise RuntimeError("broken")

        with pytest.raises(RuntimeError):
            await failing()
        assert collector.get_metrics()["failing_op"]["failures"] == 1

    def test_list_result_count_is_logged(self, collector, caplog):
        @traced("list_op")
        def listing():
            return ["a", "b", "c"]

        with caplog.at_level(logging.DEBUG, logger="cardnote.observability"):
            listing()
        assert "result_count=3" in caplog.text

    @pytest.mark.anyio
    async def test_tuple_result_has_no_count(self, collector, caplog):
        @traced("pair_op")
        async def pair():
            return ("parsed", "report")

        with caplog.at_level(logging.DEBUG, logger="cardnote.observability"):
            await pair()
        assert "END pair_op" in caplog.text
        assert "result_count" not in caplog.text


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_creates_directory_and_returns_path(self, tmp_path, clean_logger):
        log_dir = tmp_path / "logs"
        assert configure_logging(log_dir=log_dir, console=False) == log_dir
        assert log_dir.is_dir()

    def test_sets_level(self, tmp_path, clean_logger):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert clean_logger.level == logging.DEBUG

    def test_no_duplicate_file_handlers(self, tmp_path, clean_logger):
        configure_logging(log_dir=tmp_path, console=False)
        configure_logging(log_dir=tmp_path, console=False)
        file_handlers = [
            h for h in clean_logger.handlers if isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1

    def test_writes_to_log_file(self, tmp_path, clean_logger):
        configure_logging(log_dir=tmp_path, console=False)
        logging.getLogger("cardnote.test").info("hello log")
        for handler in clean_logger.handlers:
            handler.flush()
        assert "hello log" in (tmp_path / "cardnote.log").read_text(encoding="utf-8")
