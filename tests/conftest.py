"""Shared pytest fixtures for the MDR test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from mdr.models.metric import Metric, MetricBatch


# --------------------------------------------------------------------------- #
#  Helpers                                                                     #
# --------------------------------------------------------------------------- #


def make_metric(
    name: str = "cpu",
    timestamp: datetime | None = None,
    tags: dict[str, str] | None = None,
    fields: dict[str, Any] | None = None,
    series_hash: int | None = None,
) -> Metric:
    return Metric(
        name=name,
        timestamp=timestamp or datetime(2024, 3, 5, tzinfo=timezone.utc),
        tags={"host": "web01"} if tags is None else tags,
        fields={"usage_idle": 98.5} if fields is None else fields,
        series_hash=series_hash,
    )


def bulk_response(statuses: list[int], errors: dict[int, dict[str, Any]] | None = None) -> dict:
    """Build a bulk API response with one ``index`` entry per status code."""
    errors = errors or {}
    items = []
    for i, status in enumerate(statuses):
        entry: dict[str, Any] = {"_index": "metrics", "_id": str(i), "status": status}
        if i in errors:
            entry["error"] = errors[i]
        items.append({"index": entry})
    return {"took": 3, "errors": any(s >= 300 for s in statuses), "items": items}


class FakeTransport:
    """Records bulk bodies; answers with every item indexed unless told otherwise."""

    def __init__(self, response: dict | None = None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: list[tuple[list[dict[str, Any]], float]] = []

    def submit(self, operations: list[dict[str, Any]], timeout: float) -> dict[str, Any]:
        self.calls.append((operations, timeout))
        if self.exc is not None:
            raise self.exc
        if self.response is not None:
            return self.response
        return bulk_response([201] * (len(operations) // 2))

    @property
    def actions(self) -> list[dict[str, Any]]:
        return [op for ops, _ in self.calls for op in ops[0::2]]

    @property
    def documents(self) -> list[dict[str, Any]]:
        return [op for ops, _ in self.calls for op in ops[1::2]]


# --------------------------------------------------------------------------- #
#  Fixtures                                                                    #
# --------------------------------------------------------------------------- #


@pytest.fixture
def metric() -> Metric:
    return make_metric()


@pytest.fixture
def sample_batch() -> MetricBatch:
    batch = MetricBatch(metadata={"source": "test"})
    for i in range(5):
        batch.add(
            make_metric(
                name="cpu" if i % 2 == 0 else "mem",
                tags={"host": f"web{i:02d}"},
                fields={"value": float(i)},
            )
        )
    return batch


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
