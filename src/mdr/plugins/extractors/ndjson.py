"""NDJSON metric extractor — reads one JSON metric object per line.

Expected shape of each line::

    {"name": "cpu", "timestamp": "2024-03-05T00:00:00Z",
     "tags": {"host": "web01"}, "fields": {"usage_idle": 98.5}}

``timestamp`` may also be an integer of nanoseconds since the Unix epoch.
Non-finite floats are accepted as the bare tokens ``NaN``, ``Infinity`` and
``-Infinity``, which Python's ``json`` module parses natively.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Iterator

from pydantic import BaseModel, Field

from mdr.core.base import Extractor
from mdr.core.registry import registry
from mdr.models.metric import Metric, MetricBatch, datetime_from_ns


class NdjsonExtractorConfig(BaseModel):
    path: Path = Field(description="Path to the newline-delimited JSON metrics file")
    batch_size: Annotated[int, Field(gt=0)] = 1000
    skip_invalid: bool = Field(
        default=False,
        description="Skip lines that do not parse into a metric instead of failing",
    )


def parse_metric(obj: dict[str, Any]) -> Metric:
    if not isinstance(obj, dict):
        raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
    ts = obj.get("timestamp")
    if isinstance(ts, int) and not isinstance(ts, bool):
        try:
            when = datetime_from_ns(ts)
        except (OverflowError, OSError, ValueError) as exc:
            raise ValueError(f"timestamp out of range: {ts}") from exc
        obj = {**obj, "timestamp": when, "timestamp_ns": ts}
    return Metric.model_validate(obj)


@registry.extractor("ndjson")
class NdjsonMetricExtractor(Extractor[NdjsonExtractorConfig]):
    """Read metrics from an NDJSON file in batches of ``batch_size``."""

    config_class = NdjsonExtractorConfig

    def extract(self) -> Iterator[MetricBatch]:
        path = self.config.path
        if not path.exists():
            raise FileNotFoundError(f"Metrics file not found: {path}")

        batch = self._new_batch()
        # an undecodable line counts as one invalid metric
        with open(path, "rb") as fh:
            for lineno, raw in enumerate(fh, start=1):
                try:
                    line = raw.decode("utf-8").strip()
                    if not line:
                        continue
                    metric = parse_metric(json.loads(line))
                except ValueError as exc:
                    if self.config.skip_invalid:
                        continue
                    raise ValueError(f"{path}:{lineno}: invalid metric: {exc}") from exc
                batch.add(metric)
                if len(batch) >= self.config.batch_size:
                    yield batch
                    batch = self._new_batch()

        if len(batch):
            yield batch

    def _new_batch(self) -> MetricBatch:
        return MetricBatch(metadata={"source": str(self.config.path), "extractor": "ndjson"})
