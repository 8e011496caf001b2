"""Example 01 — NDJSON host metrics to Elasticsearch.

Scenario
--------
An agent has dumped host metrics (cpu, mem, disk) as newline-delimited JSON.
We want to:
  1. Read the metrics in batches (NdjsonMetricExtractor)
  2. Drop the noisy ``disk`` measurement (NameFilterTransformer)
  3. Route each metric to a daily per-host index and bulk-write the batch
     (ElasticsearchLoader), replacing NaN/Inf field values on the way

Run this script from the project root::

    python examples/01_ndjson_to_elasticsearch.py              # no cluster needed
    python examples/01_ndjson_to_elasticsearch.py http://localhost:9200

Without a URL the bulk requests are printed instead of sent.
"""

from __future__ import annotations

import json
import math
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from mdr.core.pipeline import Pipeline, PipelineConfig
from mdr.observability.logging import configure_logging
from mdr.plugins.extractors.ndjson import NdjsonExtractorConfig, NdjsonMetricExtractor
from mdr.plugins.loaders.elasticsearch import ElasticsearchLoader, ElasticsearchLoaderConfig
from mdr.plugins.transformers.filter import NameFilterConfig, NameFilterTransformer


# --------------------------------------------------------------------------- #
#  1. Generate synthetic metrics                                               #
# --------------------------------------------------------------------------- #


def generate_metrics(output_path: Path, n: int = 60) -> None:
    """Write n samples per measurement for three hosts, one every 10 s."""
    start = datetime(2024, 3, 5, 23, 58, tzinfo=timezone.utc)
    with open(output_path, "w", encoding="utf-8") as fh:
        for i in range(n):
            ts = (start + timedelta(seconds=10 * i)).isoformat()
            for host in ("web01", "web02", "db01"):
                tags = {"host": host, "role": "db" if host.startswith("db") else "web"}
                if host == "db01":
                    tags["es_pipeline"] = "db-enrich"
                idle = 90 + 5 * math.sin(i / 7.0)
                fh.write(json.dumps({
                    "name": "cpu",
                    "timestamp": ts,
                    "tags": tags,
                    # a broken sensor reading every 20 samples
                    "fields": {"usage_idle": math.nan if i % 20 == 0 else idle},
                }) + "\n")
                fh.write(json.dumps({
                    "name": "mem",
                    "timestamp": ts,
                    "tags": tags,
                    "fields": {"used_percent": 40.0 + i % 5, "swapping": False},
                }) + "\n")
                fh.write(json.dumps({
                    "name": "disk",
                    "timestamp": ts,
                    "tags": tags,
                    "fields": {"free": 1_000_000 - i},
                }) + "\n")

    print(f"[gen] Wrote {n * 9} metrics to {output_path}")


# --------------------------------------------------------------------------- #
#  2. Stand-in transport for runs without a cluster                            #
# --------------------------------------------------------------------------- #


class PrintingTransport:
    """Prints a short summary of each bulk request and reports every item indexed."""

    def submit(self, operations: list[dict[str, Any]], timeout: float) -> dict[str, Any]:
        actions = operations[0::2]
        indices = sorted({a["index"]["_index"] for a in actions})
        pipelines = sorted({a["index"].get("pipeline", "-") for a in actions})
        print(f"[bulk] {len(actions)} docs -> {indices} pipelines={pipelines}")
        return {
            "took": 1,
            "errors": False,
            "items": [{"index": {"status": 201}} for _ in actions],
        }


# --------------------------------------------------------------------------- #
#  3. Wire the pipeline                                                        #
# --------------------------------------------------------------------------- #


def main() -> None:
    configure_logging(level="INFO", fmt="console")
    url = sys.argv[1] if len(sys.argv) > 1 else None

    with tempfile.TemporaryDirectory(prefix="mdr_example_") as tmpdir:
        source = Path(tmpdir) / "host_metrics.ndjson"
        generate_metrics(source)

        extractor = NdjsonMetricExtractor(NdjsonExtractorConfig(path=source, batch_size=100))
        name_filter = NameFilterTransformer(NameFilterConfig(exclude=["disk"]))

        es_config = ElasticsearchLoaderConfig(
            urls=[url] if url else [],
            index_name="metrics-{{host}}-%Y.%m.%d",
            default_tag_value="unknown",
            use_pipeline="{{es_pipeline}}",
            float_handling="replace",
            float_replacement_value=0.0,
            force_document_id=True,
            server_version=None if url else "8.13.0",
        )
        loader = ElasticsearchLoader(es_config, transport=None if url else PrintingTransport())

        pipeline = Pipeline(
            config=PipelineConfig(name="host-metrics", stop_on_error=True),
            extractor=extractor,
            transformers=[name_filter],
            loader=loader,
        )

        result = pipeline.run()
        print(result.summary())


if __name__ == "__main__":
    main()
