"""Observability — structured logging, metrics, and event hooks."""

from mdr.observability.hooks import EventHook, HookManager
from mdr.observability.logging import configure_logging, get_logger
from mdr.observability.metrics import PipelineMetrics

__all__ = [
    "configure_logging",
    "get_logger",
    "PipelineMetrics",
    "EventHook",
    "HookManager",
]
