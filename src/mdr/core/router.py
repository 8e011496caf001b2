"""DocumentRouter — routes, encodes and bulk-writes metrics for one destination."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from mdr.core.batch import BatchCoordinator, BulkTransport
from mdr.core.encoding import FloatPolicy, encode_document
from mdr.core.identity import compute_document_id
from mdr.core.pattern import (
    CompiledPattern,
    compile_pattern,
    resolve_index_name,
    resolve_pipeline_name,
)
from mdr.core.schema import TargetSchema
from mdr.errors import ConfigurationError, PartialIndexFailure
from mdr.models.bulk import BatchItem, BatchOutcome
from mdr.models.metric import Metric

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RoutingRules:
    """Everything needed to turn a metric into a bulk item, computed once at setup."""

    index: CompiledPattern
    pipeline: CompiledPattern
    default_tag_value: str = ""
    default_pipeline: str = ""
    float_policy: FloatPolicy = FloatPolicy.NONE
    float_replacement: float = 0.0
    force_document_id: bool = False

    @classmethod
    def build(
        cls,
        index_name: str,
        use_pipeline: str = "",
        *,
        default_tag_value: str = "",
        default_pipeline: str = "",
        float_policy: FloatPolicy | str = FloatPolicy.NONE,
        float_replacement: float = 0.0,
        force_document_id: bool = False,
    ) -> RoutingRules:
        if not index_name:
            raise ConfigurationError("index_name is not defined")
        try:
            policy = FloatPolicy(float_policy or FloatPolicy.NONE)
        except ValueError:
            raise ConfigurationError(f"invalid float_handling type {float_policy!r}") from None
        return cls(
            index=compile_pattern(index_name),
            pipeline=compile_pattern(use_pipeline),
            default_tag_value=default_tag_value,
            default_pipeline=default_pipeline,
            float_policy=policy,
            float_replacement=float_replacement,
            force_document_id=force_document_id,
        )

    def to_item(self, metric: Metric) -> BatchItem:
        index = resolve_index_name(
            self.index, metric.timestamp, metric.tags, self.default_tag_value
        )
        pipeline = None
        if self.pipeline:
            pipeline = resolve_pipeline_name(self.pipeline, metric.tags, self.default_pipeline) or None
        return BatchItem(
            index=index,
            document=encode_document(metric, self.float_policy, self.float_replacement),
            doc_id=compute_document_id(metric) if self.force_document_id else None,
            pipeline=pipeline,
        )


class DocumentRouter:
    """Writes metric batches to a document store through a bulk transport.

    Usage::

        rules = RoutingRules.build("metrics-{{host}}-%Y.%m.%d", default_tag_value="none")
        router = DocumentRouter(rules, transport, TargetSchema.TYPELESS, timeout=5.0)
        router.write_batch(metrics)

    With ``allow_partial=False`` (the default) any rejected item fails the
    whole call with :class:`PartialIndexFailure`, although the accepted items
    stay indexed in the store. With ``allow_partial=True`` the outcome is
    returned and the caller decides.
    """

    def __init__(
        self,
        rules: RoutingRules,
        transport: BulkTransport,
        schema: TargetSchema = TargetSchema.TYPELESS,
        *,
        timeout: float = 5.0,
        allow_partial: bool = False,
    ) -> None:
        self.rules = rules
        self.transport = transport
        self.schema = schema
        self.timeout = timeout
        self.allow_partial = allow_partial

    def build_batch(self, metrics: Iterable[Metric]) -> BatchCoordinator:
        batch = BatchCoordinator(self.schema)
        for metric in metrics:
            batch.add(self.rules.to_item(metric))
        return batch

    def write_batch(self, metrics: Iterable[Metric]) -> BatchOutcome:
        """Route, encode and submit ``metrics`` as one bulk request.

        Raises :class:`~mdr.errors.TransportError` if the request fails and
        :class:`~mdr.errors.PartialIndexFailure` if the store rejects items
        (unless ``allow_partial`` is set).
        """
        batch = self.build_batch(metrics)
        if not len(batch):
            return BatchOutcome()

        outcome = batch.submit(self.transport, self.timeout)
        if outcome.ok:
            return outcome

        first = outcome.first_failure()
        if first is not None:
            log.error(
                "bulk.item_failed",
                position=first.position,
                status=first.status,
                reason=first.reason,
                caused_by=first.caused_by_reason,
                caused_by_type=first.caused_by_type,
            )
        if self.allow_partial:
            log.warning(
                "bulk.partial_failure",
                failed=outcome.failed_count,
                succeeded=len(outcome.succeeded),
            )
            return outcome
        raise PartialIndexFailure(outcome)
