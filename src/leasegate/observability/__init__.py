"""Observability helpers for LeaseGate."""

from leasegate.observability.metrics import metrics

__all__ = ["metrics"]
