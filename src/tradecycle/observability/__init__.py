"""
Observability for the trading cycle orchestrator.

Core Components:
- Structured Logging: single-line key=value logs with the cycle id as trace ID
- Performance Probes: per-stage timing, Prometheus metrics, audit timings
- Metrics Collection: OpenTelemetry counters, histograms and breaker gauge
- Tracing: OpenTelemetry spans around cycles and stage calls

Usage:
    >>> from tradecycle.observability.logging import get_logger
    >>> from tradecycle.observability.probe import probe
    >>>
    >>> logger = get_logger(__name__)
    >>>
    >>> with probe("orchestrator.stage.pattern_recall", trace_id):
    ...     update = await pattern_recall(state)

Configuration:
    - TRC_OBSERVABILITY__LOG_LEVEL=INFO
    - TRC_OBSERVABILITY__ENABLE_TRACING=true
    - TRC_OBSERVABILITY__OTLP_ENDPOINT=http://collector:4317
"""

from .logging import get_logger, setup_logging
from .metrics import counter, get_metrics_collector, histogram, timer
from .probe import probe
from .tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "get_logger",
    "setup_logging",
    "counter",
    "histogram",
    "timer",
    "get_metrics_collector",
    "probe",
    "trace_span",
    "get_tracer",
    "setup_tracing",
]
