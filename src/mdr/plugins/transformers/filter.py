"""Measurement name filter — keep or drop metrics by name."""

from __future__ import annotations

from fnmatch import fnmatchcase

from pydantic import BaseModel, Field

from mdr.core.base import Transformer
from mdr.core.registry import registry
from mdr.models.metric import MetricBatch


class NameFilterConfig(BaseModel):
    include: list[str] | None = Field(
        default=None,
        description="Glob patterns — only matching measurements are kept. Mutually exclusive with ``exclude``.",
    )
    exclude: list[str] | None = Field(
        default=None,
        description="Glob patterns — matching measurements are dropped.",
    )

    def model_post_init(self, __context: object) -> None:
        if self.include is not None and self.exclude is not None:
            raise ValueError("Specify either 'include' or 'exclude', not both.")


def _matches(name: str, patterns: list[str]) -> bool:
    return any(fnmatchcase(name, p) for p in patterns)


@registry.transformer("name_filter")
class NameFilterTransformer(Transformer[NameFilterConfig]):
    """Keep or remove metrics based on their measurement name."""

    config_class = NameFilterConfig

    def transform(self, batch: MetricBatch) -> MetricBatch:
        if self.config.include is not None:
            kept = [m for m in batch if _matches(m.name, self.config.include)]
        elif self.config.exclude is not None:
            kept = [m for m in batch if not _matches(m.name, self.config.exclude)]
        else:
            return batch
        return MetricBatch(metrics=kept, metadata=dict(batch.metadata))
