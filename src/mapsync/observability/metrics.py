"""
Prometheus metrics for mapsync.

Usage:
    from mapsync.observability import get_metrics_registry

    registry = get_metrics_registry()
    registry.enable()

    # The orchestrator and executor record automatically; the service
    # exposes the text format at GET /metrics.
"""

import threading
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.observability.metrics")


class MetricsRegistry:
    """
    Registry for sync metrics.

    Every recorded value is also tracked in a plain dict so callers without
    a Prometheus scraper (the CLI, tests) can read totals via get_metrics().
    """

    def __init__(self):
        self._enabled = False
        self._lock = threading.Lock()
        self._internal_metrics: dict[str, Any] = {
            "files_total": {},  # status -> count
            "unmatched_files_total": 0,
            "retries_total": {},  # outcome -> count
            "bytes_transferred_total": 0,
            "runs_total": {},  # status -> count
        }
        self._registry = CollectorRegistry()
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        self._files_counter = Counter(
            "mapsync_files_total",
            "Files processed by terminal status",
            ["status"],  # success, fail, skipped
            registry=self._registry,
        )
        self._unmatched_counter = Counter(
            "mapsync_unmatched_files_total",
            "Candidate files that no rule claimed",
            registry=self._registry,
        )
        self._retry_counter = Counter(
            "mapsync_transfer_retries_total",
            "Transfer retries by eventual outcome",
            ["outcome"],  # recovered, exhausted
            registry=self._registry,
        )
        self._bytes_counter = Counter(
            "mapsync_bytes_transferred_total",
            "Bytes transferred successfully",
            registry=self._registry,
        )
        self._run_histogram = Histogram(
            "mapsync_run_duration_seconds",
            "Sync run duration in seconds",
            ["task_type", "status"],
            registry=self._registry,
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0, 1800.0),
        )

    def enable(self):
        self._enabled = True
        logger.debug("Metrics collection enabled")

    def disable(self):
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_file(self, status: str, bytes_transferred: int = 0):
        if not self._enabled:
            return
        with self._lock:
            files = self._internal_metrics["files_total"]
            files[status] = files.get(status, 0) + 1
            self._internal_metrics["bytes_transferred_total"] += bytes_transferred
        self._files_counter.labels(status=status).inc()
        if bytes_transferred:
            self._bytes_counter.inc(bytes_transferred)

    def record_unmatched(self, count: int):
        if not self._enabled or count <= 0:
            return
        with self._lock:
            self._internal_metrics["unmatched_files_total"] += count
        self._unmatched_counter.inc(count)

    def record_retries(self, count: int, succeeded: bool):
        if not self._enabled or count <= 0:
            return
        outcome = "recovered" if succeeded else "exhausted"
        with self._lock:
            retries = self._internal_metrics["retries_total"]
            retries[outcome] = retries.get(outcome, 0) + count
        self._retry_counter.labels(outcome=outcome).inc(count)

    def record_run(self, task_type: str, status: str, duration: float):
        if not self._enabled:
            return
        with self._lock:
            runs = self._internal_metrics["runs_total"]
            runs[status] = runs.get(status, 0) + 1
        self._run_histogram.labels(task_type=task_type, status=status).observe(duration)

    def get_metrics(self) -> dict[str, Any]:
        with self._lock:
            return {
                "files_total": dict(self._internal_metrics["files_total"]),
                "unmatched_files_total": self._internal_metrics["unmatched_files_total"],
                "retries_total": dict(self._internal_metrics["retries_total"]),
                "bytes_transferred_total": self._internal_metrics["bytes_transferred_total"],
                "runs_total": dict(self._internal_metrics["runs_total"]),
            }

    def generate_prometheus_metrics(self) -> bytes:
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


_metrics_registry: MetricsRegistry | None = None
_registry_lock = threading.Lock()


def get_metrics_registry() -> MetricsRegistry:
    """Return the process-wide MetricsRegistry."""
    global _metrics_registry
    if _metrics_registry is None:
        with _registry_lock:
            if _metrics_registry is None:
                _metrics_registry = MetricsRegistry()
    return _metrics_registry


def reset_metrics_registry() -> None:
    """Drop the global registry (for tests)."""
    global _metrics_registry
    with _registry_lock:
        _metrics_registry = None
