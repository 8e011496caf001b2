"""Routing engine and pipeline framework."""

from mdr.core.base import (
    Extractor,
    Loader,
    PipelineStage,
    StageResult,
    StageStatus,
    Transformer,
)
from mdr.core.batch import BatchCoordinator, BulkTransport, classify_response
from mdr.core.encoding import FloatPolicy, encode_document
from mdr.core.identity import compute_document_id
from mdr.core.pattern import (
    CompiledPattern,
    compile_pattern,
    resolve_index_name,
    resolve_pipeline_name,
)
from mdr.core.pipeline import Pipeline, PipelineConfig, PipelineResult
from mdr.core.registry import StageRegistry, registry
from mdr.core.router import DocumentRouter, RoutingRules
from mdr.core.schema import TargetSchema

__all__ = [
    "Extractor",
    "Transformer",
    "Loader",
    "PipelineStage",
    "StageResult",
    "StageStatus",
    "Pipeline",
    "PipelineConfig",
    "PipelineResult",
    "StageRegistry",
    "registry",
    "CompiledPattern",
    "compile_pattern",
    "resolve_index_name",
    "resolve_pipeline_name",
    "FloatPolicy",
    "encode_document",
    "compute_document_id",
    "BatchCoordinator",
    "BulkTransport",
    "classify_response",
    "TargetSchema",
    "DocumentRouter",
    "RoutingRules",
]
