"""
Unit tests for correlation IDs, structured logging, timing and metrics.
"""

import asyncio
import json
import logging
from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import REGISTRY

from roomba_bridge import metrics
from roomba_bridge.correlation import (
    correlation_context,
    ensure_correlation_id,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from roomba_bridge.instrumentation import _log_timing, measure_time, timed_async
from roomba_bridge.logging_abstraction import HumanReadableFormatter, JSONFormatter, get_logger


def make_record(msg: str = "hello %s", args: tuple[object, ...] = ("robot",), **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("roomba_bridge.test", logging.INFO, __file__, 10, msg, args, None)
    if extra:
        record.extra_data = extra
    return record


class TestCorrelation:
    """Tests for correlation ID scoping"""

    def test_generated_ids_are_uuid_hex(self):
        corr_id = generate_correlation_id()
        assert len(corr_id) == 32
        assert corr_id != generate_correlation_id()

    def test_context_restores_previous_id(self):
        set_correlation_id("outer")
        try:
            with correlation_context() as inner:
                assert get_correlation_id() == inner
                assert inner != "outer"
            assert get_correlation_id() == "outer"
        finally:
            set_correlation_id(None)

    def test_explicit_id(self):
        with correlation_context("abc123") as corr_id:
            assert corr_id == "abc123"

    def test_no_auto_generate(self):
        with correlation_context(auto_generate=False) as corr_id:
            assert corr_id is None
            assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_tasks_keep_their_own_id(self):
        async def worker() -> str | None:
            with correlation_context():
                await asyncio.sleep(0)
                return get_correlation_id()

        first, second = await asyncio.gather(worker(), worker())
        assert first != second

    def test_ensure_creates_once(self):
        set_correlation_id(None)
        try:
            created = ensure_correlation_id()
            assert ensure_correlation_id() == created
        finally:
            set_correlation_id(None)


class TestFormatters:
    """Tests for JSON and human-readable log output"""

    def test_json_includes_context_and_correlation(self):
        with correlation_context("feedface"):
            output = json.loads(JSONFormatter().format(make_record(kind="busy")))

        assert output["message"] == "hello robot"
        assert output["level"] == "INFO"
        assert output["correlation_id"] == "feedface"
        assert output["context"] == {"kind": "busy"}

    def test_human_appends_context(self):
        with correlation_context("0123456789abcdef"):
            line = HumanReadableFormatter().format(make_record(address="192.168.1.50"))

        assert "[01234567]" in line
        assert line.endswith("hello robot | address=192.168.1.50")

    def test_human_without_correlation(self):
        line = HumanReadableFormatter(show_correlation=False).format(make_record())
        assert "[--------]" in line


class TestBridgeLogger:
    def test_extra_reaches_record(self, caplog: pytest.LogCaptureFixture):
        logger = get_logger("roomba_bridge.test_extra", log_format="human", human_output="stderr")
        logger.logger.addHandler(caplog.handler)
        try:
            logger.warning("poll of %s failed", "Broombot", extra={"kind": "connection"})
        finally:
            logger.logger.removeHandler(caplog.handler)

        record = caplog.records[-1]
        assert record.getMessage() == "poll of Broombot failed"
        assert record.extra_data == {"kind": "connection"}
        assert record.funcName == "test_extra_reaches_record"

    def test_logger_is_configured_once(self):
        first = get_logger("roomba_bridge.test_once", log_format="human")
        count = len(first.logger.handlers)
        second = get_logger("roomba_bridge.test_once", log_format="human")
        assert len(second.logger.handlers) == count
        assert first.logger.propagate is False

    def test_json_format_writes_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "bridge.json"
        with patch("roomba_bridge.logging_abstraction.ROOMBA_LOG_JSON_FILE", str(log_file)):
            logger = get_logger("roomba_bridge.test_json_file", log_format="json")
        try:
            try:
                raise OSError("no route to host")
            except OSError:
                logger.exception("connect to %s failed", "192.168.1.50", extra={"attempt": 2})
        finally:
            for handler in logger.logger.handlers:
                handler.close()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["level"] == "ERROR"
        assert entry["message"] == "connect to 192.168.1.50 failed"
        assert entry["context"] == {"attempt": 2}
        assert "no route to host" in entry["exception"]
        assert entry["location"].startswith("test_observability:")


class TestTiming:
    """Tests for timed_async"""

    def test_measure_time_is_milliseconds(self):
        assert measure_time(0.0) > 0

    @pytest.mark.asyncio
    async def test_wrapped_coroutine_result(self):
        @timed_async("probe")
        async def probe(value: int) -> int:
            return value * 2

        assert await probe(21) == 42
        assert probe.__name__ == "probe"

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        @timed_async()
        async def broken() -> None:
            raise OSError("unreachable")

        with pytest.raises(OSError, match="unreachable"):
            await broken()

    def test_slow_operation_warns(self):
        logger = MagicMock()
        _log_timing(logger, "session_open", 2500.0, 2000)
        logger.warning.assert_called_once()
        assert logger.warning.call_args.kwargs["extra"]["exceeded_threshold"] is True

    def test_fast_operation_debug(self):
        logger = MagicMock()
        _log_timing(logger, "dock", 5.0, 2000)
        logger.debug.assert_called_once()
        logger.warning.assert_not_called()


class TestMetrics:
    """Recording helpers update the Prometheus registry"""

    def test_poll_counter(self):
        labels = {"robot": "MetricsBot", "outcome": "skipped"}
        before = REGISTRY.get_sample_value("roomba_poll_total", labels) or 0.0
        metrics.record_poll("MetricsBot", "skipped")
        assert REGISTRY.get_sample_value("roomba_poll_total", labels) == before + 1

    def test_battery_gauge(self):
        metrics.record_battery_level("MetricsBot", 57)
        assert REGISTRY.get_sample_value("roomba_battery_level", {"robot": "MetricsBot"}) == 57

    def test_session_active_gauge(self):
        metrics.record_session_active("MetricsBot", True)
        assert REGISTRY.get_sample_value("roomba_session_active", {"robot": "MetricsBot"}) == 1
        metrics.record_session_active("MetricsBot", False)
        assert REGISTRY.get_sample_value("roomba_session_active", {"robot": "MetricsBot"}) == 0

    def test_metrics_server_starts_once(self):
        with (
            patch("roomba_bridge.metrics.registry.start_http_server") as start_http,
            patch.dict("roomba_bridge.metrics.registry._server_state", {"started": False}),
        ):
            metrics.start_metrics_server(9999)
            metrics.start_metrics_server(9999)
        start_http.assert_called_once_with(9999)
