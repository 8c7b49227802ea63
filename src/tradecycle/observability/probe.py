"""
Performance probes for cycle and stage timing.

Each probe logs its duration, feeds Prometheus request/latency metrics and keeps
per-trace timings so a finished cycle can be snapshotted for audit.
"""

import contextlib
import time
from typing import Any

from opentelemetry import trace
from prometheus_client import Counter, Histogram

from .logging import get_logger

log = get_logger("tradecycle.probe")

tracer = trace.get_tracer("tradecycle")

REQS = Counter("tradecycle_probe_total", "Total probed operations", ["op", "ok"])
LAT = Histogram("tradecycle_probe_latency_seconds", "Probed operation latency", ["op"])

# Per-trace timings for audit snapshots
_METRICS_STORE: dict[str, dict[str, Any]] = {}


@contextlib.contextmanager
def probe(op: str, trace_id: str | None = None, **labels):
    """
    Performance probe context manager.

    Args:
        op: Operation name (e.g., "orchestrator.stage.pattern_recall")
        trace_id: Optional trace ID for correlation
        **labels: Additional labels recorded with the timing
    """
    start_time = time.perf_counter()
    ok = "true"
    error_type = None

    with tracer.start_as_current_span(op):
        try:
            yield
        except Exception as e:
            ok = "false"
            error_type = type(e).__name__
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000

            log.debug(
                f"op={op} ok={ok}" + (f" error={error_type}" if error_type else ""),
                ms=duration_ms,
                **labels,
            )

            REQS.labels(op=op, ok=ok).inc()
            LAT.labels(op=op).observe(duration_ms / 1000.0)

            if trace_id:
                _METRICS_STORE.setdefault(trace_id, {})[op] = {
                    "duration_ms": duration_ms,
                    "success": ok == "true",
                    "error_type": error_type,
                    "labels": labels,
                    "timestamp": time.time(),
                }


def get_trace_metrics(trace_id: str) -> dict[str, Any]:
    """Get all metrics for a specific trace ID."""
    return _METRICS_STORE.get(trace_id, {})


def clear_trace_metrics(trace_id: str) -> None:
    """Clear metrics for a specific trace ID."""
    _METRICS_STORE.pop(trace_id, None)
