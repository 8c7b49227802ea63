"""
Tests for logging, probes, metrics and tracing helpers.
"""

import logging

import pytest

from tradecycle.observability import metrics, tracing
from tradecycle.observability.logging import StructuredFormatter, get_logger, trace_id_ctx
from tradecycle.observability.probe import clear_trace_metrics, get_trace_metrics, probe


def make_record(msg="hello", **extra):
    record = logging.LogRecord("tradecycle.core.orchestrator", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredLogging:
    """Test the key=value formatter and trace id context."""

    def test_format_includes_trace_and_fields(self):
        """Test the trace id and extra fields are rendered."""
        token = trace_id_ctx.set("cycle-123")
        try:
            line = StructuredFormatter().format(make_record(stage="backtest", ms=12.34))
        finally:
            trace_id_ctx.reset(token)

        assert "level=INFO" in line
        assert "trace=cycle-123" in line
        assert "mod=orchestrator" in line
        assert 'msg="hello"' in line
        assert "ms=12.3" in line
        assert "stage=backtest" in line

    def test_format_without_trace(self):
        """Test lines outside a cycle use a dash for the trace id."""
        assert "trace=-" in StructuredFormatter().format(make_record())

    def test_logger_cached(self):
        """Test get_logger returns one logger per name."""
        assert get_logger("tradecycle.x") is get_logger("tradecycle.x")

    def test_fields_reach_records(self, caplog):
        """Test keyword fields are attached to the log record."""
        logger = get_logger("tradecycle.test")

        with caplog.at_level(logging.INFO, logger="tradecycle.test"):
            logger.info("Stage done", stage="execution", consecutive_errors=2)

        record = caplog.records[-1]
        assert record.stage == "execution"
        assert record.consecutive_errors == 2


class TestProbe:
    """Test per-trace timing probes."""

    def test_records_success(self):
        """Test a successful probe stores its timing under the trace id."""
        with probe("orchestrator.stage.backtest", "trace-1", symbol="BTC"):
            pass

        data = get_trace_metrics("trace-1")["orchestrator.stage.backtest"]
        assert data["success"] is True
        assert data["duration_ms"] >= 0
        assert data["labels"] == {"symbol": "BTC"}

    def test_records_failure_and_reraises(self):
        """Test a failing probe stores the error type and re-raises."""
        with pytest.raises(KeyError):
            with probe("orchestrator.stage.execution", "trace-2"):
                raise KeyError("order")

        data = get_trace_metrics("trace-2")["orchestrator.stage.execution"]
        assert data["success"] is False
        assert data["error_type"] == "KeyError"

    def test_clear(self):
        """Test clearing a trace drops its timings."""
        with probe("op", "trace-3"):
            pass

        clear_trace_metrics("trace-3")

        assert get_trace_metrics("trace-3") == {}


class TestMetricsCollector:
    """Test business metric aggregation."""

    def test_stage_aggregates(self):
        """Test calls, faults and fault rate per stage."""
        collector = metrics.get_metrics_collector()
        collector.record_stage_call("backtest", 0.2, True)
        collector.record_stage_call("backtest", 0.4, False)
        collector.record_fallback("backtest", "stage")
        collector.record_cycle(1.5, "LEARNING", 0)
        collector.record_breaker_state(1, False)

        data = collector.get_business_metrics()

        assert data["stage_backtest"]["calls"] == 2
        assert data["stage_backtest"]["faults"] == 1
        assert data["stage_backtest"]["fault_rate"] == 0.5
        assert data["stage_backtest"]["avg_duration"] == pytest.approx(0.3)
        assert data["final_steps"] == {"LEARNING": 1}

    def test_stage_durations_are_running_totals(self):
        """Test repeated calls keep one running total per stage."""
        collector = metrics.get_metrics_collector()
        for _ in range(1000):
            collector.record_stage_call("market_data", 0.01, True)

        data = collector.get_business_metrics()

        assert data["stage_market_data"]["calls"] == 1000
        assert data["stage_market_data"]["avg_duration"] == pytest.approx(0.01)
        assert collector._stage_duration_totals["market_data"] == pytest.approx(10.0)

    def test_collector_is_shared(self):
        """Test the global collector is created once."""
        assert metrics.get_metrics_collector() is metrics.get_metrics_collector()

    def test_counter_and_timer_helpers(self):
        """Test module-level helpers reuse instruments."""
        assert metrics.counter("circuit_breaker_failures_total") is metrics.counter(
            "circuit_breaker_failures_total"
        )
        with metrics.timer("runner.round", {"symbols": "2"}):
            pass


class TestTracing:
    """Test tracing helpers with the default no-op tracer."""

    @pytest.mark.asyncio
    async def test_trace_span_async(self):
        """Test the decorator preserves async results."""

        @tracing.trace_span("test.async")
        async def compute(x):
            return x * 2

        assert await compute(21) == 42

    def test_trace_span_sync(self):
        """Test the decorator preserves sync results and exceptions."""

        @tracing.trace_span()
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            explode()

    def test_manager_span(self):
        """Test spans can be opened without an exporter."""
        manager = tracing.TracingManager("tradecycle-test")

        with manager.span("unit", {"stage": "risk_assessment"}):
            tracing.add_span_attributes(symbol="BTC")
