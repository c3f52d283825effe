"""Observability: Prometheus metrics for macbridge."""

from macbridge.observability.metrics import metrics

__all__ = ["metrics"]
