"""Stage contracts for the forwarding pipeline.

A run is one :class:`Extractor` producing :class:`MetricBatch` objects, any
number of :class:`Transformer` stages rewriting them, and one :class:`Loader`
shipping them out. Each stage takes a pydantic config model and is set up
once before the first batch and torn down once after the last.
"""

from __future__ import annotations

import abc
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel

from mdr.models.metric import MetricBatch

if TYPE_CHECKING:
    from mdr.observability.metrics import PipelineMetrics

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class StageStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


@dataclass
class StageResult:
    """How one stage handled one batch."""

    stage_name: str
    status: StageStatus
    elapsed_s: float
    records_in: int = 0
    records_out: int = 0
    error: Exception | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCESS


class PipelineStage(abc.ABC, Generic[ConfigT]):
    """Common plumbing: config, name, lifecycle hooks and timing.

    Subclasses declare ``config_class`` so the CLI can build the config from JSON.
    """

    config_class: type[BaseModel]

    def __init__(self, config: ConfigT) -> None:
        self.config = config

    @property
    def name(self) -> str:
        return type(self).__name__

    def validate_config(self) -> None:
        """Raise ConfigurationError for settings pydantic cannot check alone."""

    def setup(self) -> None:
        """Acquire resources (clients, files) before the first batch."""

    def teardown(self) -> None:
        """Release resources; runs even when the pipeline failed."""

    def _timed(
        self, batch: MetricBatch, call: Callable[[MetricBatch], MetricBatch]
    ) -> tuple[MetricBatch, StageResult]:
        t0 = time.perf_counter()
        try:
            out = call(batch)
        except Exception as exc:
            return batch, StageResult(
                self.name,
                StageStatus.FAILED,
                time.perf_counter() - t0,
                records_in=len(batch),
                error=exc,
            )
        return out, StageResult(
            self.name,
            StageStatus.SUCCESS,
            time.perf_counter() - t0,
            records_in=len(batch),
            records_out=len(out),
        )


class Extractor(PipelineStage[ConfigT]):
    """Source of metric batches."""

    @abc.abstractmethod
    def extract(self) -> Iterator[MetricBatch]:
        """Yield batches until the source is exhausted."""


class Transformer(PipelineStage[ConfigT]):
    """Batch-in, batch-out rewrite step."""

    @abc.abstractmethod
    def transform(self, batch: MetricBatch) -> MetricBatch:
        """Return the rewritten batch; the input may be returned unchanged."""

    def _timed_transform(self, batch: MetricBatch) -> tuple[MetricBatch, StageResult]:
        return self._timed(batch, self.transform)


class Loader(PipelineStage[ConfigT]):
    """Destination for metric batches.

    ``metrics`` is attached by the :class:`~mdr.core.pipeline.Pipeline` that
    runs the loader, so loaders can report per-document results.
    """

    metrics: PipelineMetrics | None = None

    @abc.abstractmethod
    def load(self, batch: MetricBatch) -> None:
        """Ship the batch; raise if it could not be delivered."""

    def _timed_load(self, batch: MetricBatch) -> StageResult:
        def _ship(b: MetricBatch) -> MetricBatch:
            self.load(b)
            return b

        return self._timed(batch, _ship)[1]
