"""Built-in plugins: extractors, transformers, and loaders."""

from mdr.plugins.extractors.ndjson import NdjsonExtractorConfig, NdjsonMetricExtractor
from mdr.plugins.loaders.elasticsearch import (
    ElasticsearchLoader,
    ElasticsearchLoaderConfig,
    ElasticsearchTransport,
)
from mdr.plugins.transformers.filter import NameFilterConfig, NameFilterTransformer

__all__ = [
    "NdjsonMetricExtractor",
    "NdjsonExtractorConfig",
    "NameFilterTransformer",
    "NameFilterConfig",
    "ElasticsearchLoader",
    "ElasticsearchLoaderConfig",
    "ElasticsearchTransport",
]
