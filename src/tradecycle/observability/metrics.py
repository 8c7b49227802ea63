"""
Metrics for the trading cycle orchestrator on top of the OpenTelemetry metrics API.

Tracks stage calls, stage faults, fallback substitutions, cycle durations and
the circuit breaker state. Business aggregates are kept in-process so the
health endpoint can report them without a metrics backend.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any

from opentelemetry.metrics import Counter as OTelCounter
from opentelemetry.metrics import Histogram, Meter, NoOpMeter

from .logging import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """Centralized metrics collection and management."""

    def __init__(self, meter: Meter):
        self.meter = meter
        self._counters: dict[str, OTelCounter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._gauges: dict[str, Any] = {}

        # Business metrics
        self._stage_calls = defaultdict(int)
        self._stage_faults = defaultdict(int)
        self._stage_duration_totals = defaultdict(float)
        self._final_steps = defaultdict(int)

        self._setup_default_metrics()

    def _setup_default_metrics(self):
        """Setup default orchestrator metrics."""
        self._counters["stage_calls_total"] = self.meter.create_counter(
            "tradecycle_stage_calls_total", description="Total number of stage calls", unit="1"
        )

        self._counters["stage_faults_total"] = self.meter.create_counter(
            "tradecycle_stage_faults_total",
            description="Total number of faulted stage calls",
            unit="1",
        )

        self._counters["stage_fallbacks_total"] = self.meter.create_counter(
            "tradecycle_stage_fallbacks_total",
            description="Fallback substitutions by kind (stage or hard_fail)",
            unit="1",
        )

        self._histograms["stage_duration"] = self.meter.create_histogram(
            "tradecycle_stage_duration_seconds",
            description="Stage call duration in seconds",
            unit="s",
        )

        self._counters["cycles_total"] = self.meter.create_counter(
            "tradecycle_cycles_total", description="Total trading cycles", unit="1"
        )

        self._histograms["cycle_duration"] = self.meter.create_histogram(
            "tradecycle_cycle_duration_seconds",
            description="Trading cycle duration",
            unit="s",
        )

        self._gauges["consecutive_errors"] = self.meter.create_gauge(
            "tradecycle_consecutive_errors",
            description="Consecutive stage faults seen by the circuit breaker",
            unit="1",
        )

    def counter(self, name: str, description: str = "", unit: str = "1") -> OTelCounter:
        """Get or create a counter metric."""
        if name not in self._counters:
            self._counters[name] = self.meter.create_counter(
                f"tradecycle_{name}", description=description, unit=unit
            )
        return self._counters[name]

    def histogram(self, name: str, description: str = "", unit: str = "1") -> Histogram:
        """Get or create a histogram metric."""
        if name not in self._histograms:
            self._histograms[name] = self.meter.create_histogram(
                f"tradecycle_{name}", description=description, unit=unit
            )
        return self._histograms[name]

    def record_stage_call(self, stage: str, duration: float, success: bool):
        """Record one protected stage call."""
        attributes = {"stage": stage, "success": str(success).lower()}

        self._counters["stage_calls_total"].add(1, attributes)
        if not success:
            self._counters["stage_faults_total"].add(1, {"stage": stage})
        self._histograms["stage_duration"].record(duration, attributes)

        self._stage_calls[stage] += 1
        if not success:
            self._stage_faults[stage] += 1
        self._stage_duration_totals[stage] += duration

    def record_fallback(self, stage: str, kind: str):
        """Record a fallback substitution ("stage" or "hard_fail")."""
        self._counters["stage_fallbacks_total"].add(1, {"stage": stage, "kind": kind})

    def record_cycle(self, duration: float, final_step: str, error_count: int):
        """Record a completed trading cycle."""
        attributes = {"final_step": final_step, "had_errors": str(error_count > 0).lower()}

        self._counters["cycles_total"].add(1, attributes)
        self._histograms["cycle_duration"].record(duration, attributes)
        self._final_steps[final_step] += 1

    def record_breaker_state(self, consecutive_errors: int, is_open: bool):
        """Record the current circuit breaker counter."""
        self._gauges["consecutive_errors"].set(
            consecutive_errors, {"breaker_open": str(is_open).lower()}
        )

    def get_business_metrics(self) -> dict[str, Any]:
        """Get aggregated per-stage metrics."""
        metrics_data: dict[str, Any] = {}

        for stage, calls in self._stage_calls.items():
            faults = self._stage_faults[stage]
            total_duration = self._stage_duration_totals[stage]
            metrics_data[f"stage_{stage}"] = {
                "calls": calls,
                "faults": faults,
                "fault_rate": faults / calls if calls > 0 else 0,
                "avg_duration": total_duration / calls if calls > 0 else 0,
            }

        metrics_data["final_steps"] = dict(self._final_steps)
        return metrics_data


# Global metrics collector instance
_metrics_collector: MetricsCollector | None = None


def setup_metrics(meter: Meter) -> MetricsCollector:
    """Setup global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector, creating a no-op one if none was set up."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(NoOpMeter("tradecycle"))
    return _metrics_collector


def counter(name: str, description: str = "", unit: str = "1") -> OTelCounter:
    """Get or create a counter metric."""
    return get_metrics_collector().counter(name, description, unit)


def histogram(name: str, description: str = "", unit: str = "1") -> Histogram:
    """Get or create a histogram metric."""
    return get_metrics_collector().histogram(name, description, unit)


@contextmanager
def timer(metric_name: str, attributes: dict[str, str] | None = None):
    """Context manager for timing operations."""
    start_time = time.time()
    try:
        yield
    finally:
        duration = time.time() - start_time
        hist = histogram(f"{metric_name}_duration", "Operation duration", "s")
        hist.record(duration, attributes or {})
