"""Observability helpers."""

from leasegate.observability.metrics import metrics

__all__ = ["metrics"]
