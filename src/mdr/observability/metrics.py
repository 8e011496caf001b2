"""Run counters: what a forwarding run read, filtered, indexed and lost.

Two views are kept side by side:

* per-stage timings, fed from each :class:`~mdr.core.base.StageResult`;
* an indexing tally, fed by the loader from every bulk
  :class:`~mdr.models.bulk.BatchOutcome` (documents accepted, documents
  rejected by error type, requests that never got an answer).

Export them through ``HookManager`` handlers if a deployment needs Prometheus
or similar.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mdr.core.base import StageResult
    from mdr.models.bulk import BatchOutcome


@dataclass
class StageTiming:
    name: str
    calls: int = 0
    metrics_in: int = 0
    metrics_out: int = 0
    failures: int = 0
    seconds: float = 0.0

    @property
    def dropped(self) -> int:
        """Metrics a stage consumed without passing on (filters, failed loads)."""
        return self.metrics_in - self.metrics_out

    @property
    def metrics_per_second(self) -> float:
        return self.metrics_out / self.seconds if self.seconds else 0.0


@dataclass
class IndexingTally:
    bulk_requests: int = 0
    transport_errors: int = 0
    documents_indexed: int = 0
    documents_failed: int = 0
    store_time_ms: int = 0
    failure_types: Counter[str] = field(default_factory=Counter)

    @property
    def documents_sent(self) -> int:
        return self.documents_indexed + self.documents_failed

    @property
    def rejection_rate(self) -> float:
        sent = self.documents_sent
        return self.documents_failed / sent if sent else 0.0


class PipelineMetrics:
    """Thread-safe counters for one pipeline run."""

    def __init__(self, pipeline_name: str) -> None:
        self.pipeline_name = pipeline_name
        self._lock = Lock()
        self._started = time.perf_counter()
        self._batches = 0
        self._metrics = 0
        self._stages: dict[str, StageTiming] = {}
        self._indexing = IndexingTally()

    # ------------------------------------------------------------------ #
    #  Recording                                                           #
    # ------------------------------------------------------------------ #

    def record_batch(self, metric_count: int) -> None:
        with self._lock:
            self._batches += 1
            self._metrics += metric_count

    def record_stage(self, result: StageResult) -> None:
        with self._lock:
            timing = self._stages.setdefault(result.stage_name, StageTiming(result.stage_name))
            timing.calls += 1
            timing.metrics_in += result.records_in
            timing.metrics_out += result.records_out
            timing.seconds += result.elapsed_s
            if not result.ok:
                timing.failures += 1

    def record_bulk(self, outcome: BatchOutcome) -> None:
        """Count one answered bulk request, item by item."""
        with self._lock:
            tally = self._indexing
            tally.bulk_requests += 1
            tally.documents_indexed += len(outcome.succeeded)
            tally.documents_failed += outcome.failed_count
            tally.store_time_ms += outcome.took_ms or 0
            tally.failure_types.update(f.error_type or f"status_{f.status}" for f in outcome.failures)

    def record_transport_error(self) -> None:
        with self._lock:
            self._indexing.bulk_requests += 1
            self._indexing.transport_errors += 1

    # ------------------------------------------------------------------ #
    #  Querying                                                            #
    # ------------------------------------------------------------------ #

    @property
    def batches(self) -> int:
        return self._batches

    @property
    def total_metrics(self) -> int:
        return self._metrics

    @property
    def indexing(self) -> IndexingTally:
        return self._indexing

    @property
    def elapsed_s(self) -> float:
        return time.perf_counter() - self._started

    def stage(self, name: str) -> StageTiming | None:
        return self._stages.get(name)

    def stages(self) -> list[StageTiming]:
        return list(self._stages.values())

    def snapshot(self) -> dict[str, object]:
        """Plain-dict copy of every counter, safe to JSON-encode."""
        with self._lock:
            tally = self._indexing
            return {
                "pipeline": self.pipeline_name,
                "elapsed_s": round(self.elapsed_s, 4),
                "batches": self._batches,
                "total_metrics": self._metrics,
                "indexing": {
                    "bulk_requests": tally.bulk_requests,
                    "transport_errors": tally.transport_errors,
                    "documents_indexed": tally.documents_indexed,
                    "documents_failed": tally.documents_failed,
                    "store_time_ms": tally.store_time_ms,
                    "failure_types": dict(tally.failure_types),
                },
                "stages": {
                    t.name: {
                        "calls": t.calls,
                        "metrics_in": t.metrics_in,
                        "metrics_out": t.metrics_out,
                        "failures": t.failures,
                        "seconds": round(t.seconds, 6),
                    }
                    for t in self._stages.values()
                },
            }
