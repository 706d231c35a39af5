"""ctxsync observability package: in-process metrics."""

from ctxsync.observability.metrics import MetricsCollector, get_metrics

__all__ = ["MetricsCollector", "get_metrics"]
