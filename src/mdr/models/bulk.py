"""Bulk request items and the classified outcome of one bulk submission."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BatchItem:
    """One index operation: target index, encoded document and optional routing extras."""

    index: str
    document: dict[str, Any]
    doc_id: str | None = None
    pipeline: str | None = None


@dataclass(frozen=True)
class ItemFailure:
    """A single item the store refused to index."""

    position: int
    status: int
    error_type: str | None = None
    reason: str | None = None
    caused_by_type: str | None = None
    caused_by_reason: str | None = None

    def describe(self) -> str:
        text = f"[{self.status}] {self.error_type or 'error'}: {self.reason or 'unknown'}"
        if self.caused_by_type or self.caused_by_reason:
            text += f" (caused by {self.caused_by_type}: {self.caused_by_reason})"
        return text


@dataclass
class BatchOutcome:
    """Per-item result of a bulk call.

    ``succeeded`` and ``failures`` both refer to positions in the submitted
    batch, so callers can tell exactly which documents made it to the store.
    """

    succeeded: list[int] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    took_ms: int | None = None

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failures)

    def first_failure(self) -> ItemFailure | None:
        return self.failures[0] if self.failures else None
