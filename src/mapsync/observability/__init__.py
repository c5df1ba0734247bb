"""
Observability: Prometheus metrics for sync runs.
"""

from mapsync.observability.metrics import MetricsRegistry, get_metrics_registry, reset_metrics_registry

__all__ = ["MetricsRegistry", "get_metrics_registry", "reset_metrics_registry"]
