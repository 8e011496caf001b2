"""Bulk request assembly and response classification.

A :class:`BatchCoordinator` collects :class:`BatchItem` objects, turns them
into one bulk body and sends it through a :class:`BulkTransport`. The raw bulk
response is classified item by item into a :class:`BatchOutcome`.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Any, Protocol

import structlog

from mdr.core.schema import TargetSchema
from mdr.errors import TransportError
from mdr.models.bulk import BatchItem, BatchOutcome, ItemFailure

log = structlog.get_logger(__name__)


class BulkTransport(Protocol):
    """Anything that can execute a bulk body and return the decoded response."""

    def submit(self, operations: list[dict[str, Any]], timeout: float) -> dict[str, Any]: ...


class BatchCoordinator:
    """Accumulates index operations for a single bulk call."""

    def __init__(self, schema: TargetSchema = TargetSchema.TYPELESS) -> None:
        self.schema = schema
        self._items: list[BatchItem] = []

    def add(self, item: BatchItem) -> None:
        self._items.append(item)

    def clear(self) -> None:
        self._items.clear()

    @property
    def items(self) -> list[BatchItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[BatchItem]:
        return iter(self._items)

    # ------------------------------------------------------------------ #
    #  Request                                                             #
    # ------------------------------------------------------------------ #

    def action(self, item: BatchItem) -> dict[str, Any]:
        meta: dict[str, Any] = {"_index": item.index}
        if item.doc_id is not None:
            meta["_id"] = item.doc_id
        if item.pipeline:
            meta["pipeline"] = item.pipeline
        if self.schema.doc_type is not None:
            meta["_type"] = self.schema.doc_type
        return {"index": meta}

    def operations(self) -> list[dict[str, Any]]:
        """Bulk body: one action line followed by its document, per item."""
        ops: list[dict[str, Any]] = []
        for item in self._items:
            ops.append(self.action(item))
            ops.append(item.document)
        return ops

    def submit(self, transport: BulkTransport, timeout: float) -> BatchOutcome:
        """Send all items in one call and classify the response.

        Raises :class:`TransportError` if the call itself fails.
        """
        if not self._items:
            return BatchOutcome()

        t0 = time.perf_counter()
        try:
            response = transport.submit(self.operations(), timeout)
        except Exception as exc:
            log.error("bulk.transport_error", items=len(self._items), error=str(exc))
            raise TransportError(f"error sending bulk request: {exc}") from exc

        outcome = classify_response(response)
        log.debug(
            "bulk.submitted",
            items=len(self._items),
            failed=outcome.failed_count,
            elapsed_s=f"{time.perf_counter() - t0:.3f}",
        )
        return outcome


# --------------------------------------------------------------------------- #
#  Response                                                                    #
# --------------------------------------------------------------------------- #


def _item_result(entry: dict[str, Any]) -> dict[str, Any]:
    # each entry is keyed by its op type: {"index": {...}}
    if len(entry) == 1:
        return next(iter(entry.values())) or {}
    return entry


def classify_response(response: dict[str, Any]) -> BatchOutcome:
    """Split a bulk response into succeeded positions and item failures."""
    outcome = BatchOutcome(took_ms=response.get("took"))
    for position, entry in enumerate(response.get("items") or []):
        result = _item_result(entry)
        status = int(result.get("status", 0))
        error = result.get("error")
        if error is None and 200 <= status <= 299:
            outcome.succeeded.append(position)
            continue
        outcome.failures.append(_failure(position, status, error))
    return outcome


def _failure(position: int, status: int, error: Any) -> ItemFailure:
    if isinstance(error, str):
        return ItemFailure(position=position, status=status, reason=error)
    error = error or {}
    cause = error.get("caused_by") or {}
    return ItemFailure(
        position=position,
        status=status,
        error_type=error.get("type"),
        reason=error.get("reason"),
        caused_by_type=cause.get("type"),
        caused_by_reason=cause.get("reason"),
    )
