"""
Prometheus metrics for node rotation.

Registered on the global REGISTRY at import time. A run can dump them to
a textfile for the node exporter (NODE_ROTATION_METRICS_TEXTFILE).
"""

from prometheus_client import Counter, Histogram

ROTATION_RUNS_TOTAL = Counter(
    "node_rotation_runs_total",
    "Total rotation runs by outcome",
    ["outcome"],
)

ROTATION_STATE_DURATION = Histogram(
    "node_rotation_state_duration_seconds",
    "Time spent in each task state (including retries)",
    ["state"],
    buckets=[0.1, 0.5, 1, 5, 30, 60, 300, 600, 1800, 3600, 7200, 14400, 28800],
)

ROTATION_POLL_FAILURES_TOTAL = Counter(
    "node_rotation_poll_failures_total",
    "Polls that did not yet observe the awaited condition",
    ["state"],
)

ROTATION_ALERTS_TOTAL = Counter(
    "node_rotation_alerts_total",
    "Alerts emitted by kind",
    ["kind"],
)


class MetricsRegistry:
    """Structured access to rotation metrics."""

    runs_total = ROTATION_RUNS_TOTAL
    state_duration = ROTATION_STATE_DURATION
    poll_failures_total = ROTATION_POLL_FAILURES_TOTAL
    alerts_total = ROTATION_ALERTS_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
