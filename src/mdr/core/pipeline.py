"""Forwarding run: one extractor, a chain of transformers, one loader.

Batches are pulled from the extractor lazily and pushed through every
transformer in order before the loader sees them. Stage failures are
collected on the :class:`PipelineResult`; with ``stop_on_error`` the first
one ends the run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from mdr.core.base import (
    Extractor,
    Loader,
    PipelineStage,
    StageResult,
    StageStatus,
    Transformer,
)
from mdr.models.metric import MetricBatch
from mdr.observability.hooks import HookManager
from mdr.observability.metrics import PipelineMetrics

log = structlog.get_logger(__name__)


@dataclass
class PipelineConfig:
    name: str
    stop_on_error: bool = True
    max_batches: int | None = None
    dry_run: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineResult:
    """Outcome of :meth:`Pipeline.run`."""

    pipeline_name: str
    status: StageStatus
    elapsed_s: float
    batches_processed: int
    total_metrics: int
    documents_indexed: int = 0
    documents_failed: int = 0
    stage_results: list[StageResult] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCESS

    def summary(self) -> str:
        lines = [
            f"Pipeline '{self.pipeline_name}': {self.status}",
            f"  elapsed   : {self.elapsed_s:.3f}s",
            f"  batches   : {self.batches_processed}",
            f"  metrics   : {self.total_metrics}",
            f"  indexed   : {self.documents_indexed}",
        ]
        if self.documents_failed:
            lines.append(f"  rejected  : {self.documents_failed}")
        if self.errors:
            lines.append(f"  errors    : {len(self.errors)}")
        for r in self.stage_results:
            lines.append(
                f"  [{r.stage_name}] {r.status} "
                f"in={r.records_in} out={r.records_out} "
                f"t={r.elapsed_s:.3f}s"
            )
        return "\n".join(lines)


class _Run:
    """Mutable bookkeeping for a single :meth:`Pipeline.run` call."""

    def __init__(self) -> None:
        self.started = time.perf_counter()
        self.results: list[StageResult] = []
        self.errors: list[Exception] = []
        self.batches = 0
        self.metrics = 0


class Pipeline:
    """Orchestrates one Extractor, N Transformers and one Loader.

    Usage::

        pipeline = Pipeline(
            config=PipelineConfig(name="host-metrics"),
            extractor=NdjsonMetricExtractor(cfg),
            transformers=[NameFilterTransformer(cfg)],
            loader=ElasticsearchLoader(cfg),
        )
        result = pipeline.run()

    The loader is handed this pipeline's :class:`PipelineMetrics` so it can
    count indexed and rejected documents.
    """

    def __init__(
        self,
        config: PipelineConfig,
        extractor: Extractor,  # type: ignore[type-arg]
        transformers: list[Transformer] | None = None,  # type: ignore[type-arg]
        loader: Loader | None = None,  # type: ignore[type-arg]
        hooks: HookManager | None = None,
    ) -> None:
        self.config = config
        self.extractor = extractor
        self.transformers: list[Transformer] = transformers or []  # type: ignore[type-arg]
        self.loader = loader
        self.hooks = hooks or HookManager()
        self._metrics = PipelineMetrics(pipeline_name=config.name)
        if loader is not None:
            loader.metrics = self._metrics

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    def run(self) -> PipelineResult:
        """Execute the pipeline synchronously and return a result summary."""
        run = _Run()
        log.info("pipeline.start", pipeline=self.config.name, dry_run=self.config.dry_run)
        self.hooks.fire("pipeline.start", self.config.name)

        stages = self._active_stages()
        try:
            for stage in stages:
                stage.validate_config()
                stage.setup()
            for batch in self.extractor.extract():
                if not self._process(batch, run):
                    break
                if self.config.max_batches and run.batches >= self.config.max_batches:
                    log.info("pipeline.max_batches_reached", max=self.config.max_batches)
                    break
        except Exception as exc:
            run.errors.append(exc)
            log.exception("pipeline.unhandled_error", error=str(exc))
            self.hooks.fire("stage.error", self.config.name, exc)
        finally:
            for stage in stages:
                stage.teardown()

        result = self._result(run)
        log.info(
            "pipeline.complete",
            pipeline=self.config.name,
            status=result.status,
            elapsed_s=f"{result.elapsed_s:.3f}",
            batches=result.batches_processed,
            metrics=result.total_metrics,
            indexed=result.documents_indexed,
            rejected=result.documents_failed,
        )
        self.hooks.fire("pipeline.complete", result)
        return result

    def add_transformer(self, transformer: Transformer) -> Pipeline:  # type: ignore[type-arg]
        """Fluent method to append a transformer stage."""
        self.transformers.append(transformer)
        return self

    def _active_stages(self) -> list[PipelineStage]:  # type: ignore[type-arg]
        stages: list[PipelineStage] = [self.extractor, *self.transformers]  # type: ignore[type-arg]
        if self.loader and not self.config.dry_run:
            stages.append(self.loader)
        return stages

    def _process(self, batch: MetricBatch, run: _Run) -> bool:
        """Push one batch through the chain; False means stop the run."""
        log.debug("pipeline.batch.extracted", batch=run.batches, metrics=len(batch))
        self.hooks.fire("batch.extracted", batch)

        for transformer in self.transformers:
            batch, result = transformer._timed_transform(batch)
            if not self._settle(transformer, result, run) and self.config.stop_on_error:
                log.error("pipeline.stopped_on_error", stage=transformer.name)
                return False
        if self.transformers:
            self.hooks.fire("batch.transformed", batch)

        if self.loader and not self.config.dry_run:
            result = self.loader._timed_load(batch)
            if self._settle(self.loader, result, run):
                self.hooks.fire("batch.loaded", batch, result)
            elif self.config.stop_on_error:
                return False

        run.batches += 1
        run.metrics += len(batch)
        self._metrics.record_batch(len(batch))
        return True

    def _settle(self, stage: PipelineStage, result: StageResult, run: _Run) -> bool:  # type: ignore[type-arg]
        run.results.append(result)
        self._metrics.record_stage(result)
        if result.error is None:
            return True
        run.errors.append(result.error)
        log.warning("stage.error", stage=stage.name, error=str(result.error))
        self.hooks.fire("stage.error", stage.name, result.error)
        return False

    def _result(self, run: _Run) -> PipelineResult:
        tally = self._metrics.indexing
        return PipelineResult(
            pipeline_name=self.config.name,
            status=StageStatus.FAILED if run.errors else StageStatus.SUCCESS,
            elapsed_s=time.perf_counter() - run.started,
            batches_processed=run.batches,
            total_metrics=run.metrics,
            documents_indexed=tally.documents_indexed,
            documents_failed=tally.documents_failed,
            stage_results=run.results,
            errors=run.errors,
        )

    def __repr__(self) -> str:
        t_names = [t.name for t in self.transformers]
        loader_name = self.loader.name if self.loader else "none"
        return (
            f"Pipeline(name={self.config.name!r}, "
            f"extractor={self.extractor.name!r}, "
            f"transformers={t_names}, "
            f"loader={loader_name!r})"
        )
