"""Typed data models for metrics and bulk submissions."""

from mdr.models.bulk import BatchItem, BatchOutcome, ItemFailure
from mdr.models.metric import FieldValue, Metric, MetricBatch

__all__ = [
    "FieldValue",
    "Metric",
    "MetricBatch",
    "BatchItem",
    "ItemFailure",
    "BatchOutcome",
]
