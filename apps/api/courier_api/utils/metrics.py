"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Append metrics
thread_appends = Counter(
    "courier_thread_appends_total",
    "Thread append attempts",
    ["outcome"],
)

thread_truncations = Counter(
    "courier_thread_truncations_total",
    "Appends that truncated unconfirmed entries from a stored thread log",
)

# Cleanup metrics
sweep_entries = Counter(
    "courier_sweep_entries_total",
    "Tracked writes processed by the cleanup sweep",
    ["outcome"],
)

sweep_duration = Histogram(
    "courier_sweep_duration_seconds",
    "Cleanup sweep duration",
)

manual_unpins = Counter(
    "courier_manual_unpins_total",
    "Signed manual unpin requests",
    ["outcome"],
)
