"""Elasticsearch loader — writes metric batches to an Elasticsearch cluster.

The bundled transport uses the 8.x ``elasticsearch`` client and so talks to
8.x clusters only. Older clusters (including the typed 5.x/6.x bulk format)
need a :class:`~mdr.core.batch.BulkTransport` passed in by the caller.

Each metric becomes one document in an index resolved from ``index_name``,
for example ``"metrics-{{host}}-%Y.%m.%d"``, optionally routed through an
ingest pipeline resolved from ``use_pipeline``. A batch is sent as a single
bulk request; the client does not retry on its own.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

import structlog
from elasticsearch import Elasticsearch
from pydantic import BaseModel, Field

from mdr.core.base import Loader
from mdr.core.batch import BulkTransport
from mdr.core.encoding import FloatPolicy
from mdr.core.registry import registry
from mdr.core.router import DocumentRouter, RoutingRules
from mdr.core.schema import TargetSchema, major_version
from mdr.errors import ConfigurationError, PartialIndexFailure, TransportError
from mdr.models.bulk import BatchOutcome
from mdr.models.metric import MetricBatch

log = structlog.get_logger(__name__)

# the 8.x client sends compatible-with=8 headers and checks X-Elastic-Product
CLIENT_MIN_MAJOR = 8


class ElasticsearchLoaderConfig(BaseModel):
    urls: list[str] = Field(default_factory=list, description="Cluster node URLs")
    index_name: str = Field(
        default="",
        description="Target index template with %Y/%y/%m/%d/%H/%V and {{tag}} placeholders",
    )
    timeout_s: Annotated[float, Field(gt=0)] = 5.0
    enable_sniffer: bool = False
    enable_gzip: bool = False
    username: str | None = None
    password: str | None = None
    auth_bearer_token: str | None = None
    tls_ca: Path | None = None
    insecure_skip_verify: bool = False
    default_tag_value: str = Field(
        default="",
        description="Substituted in the index name for tags a metric does not carry",
    )
    use_pipeline: str = Field(default="", description="Ingest pipeline name, may contain {{tag}}")
    default_pipeline: str = Field(
        default="",
        description="Pipeline used when a tag referenced by use_pipeline is missing",
    )
    force_document_id: bool = Field(
        default=False,
        description="Send a content-derived document ID so re-sent metrics overwrite instead of duplicating",
    )
    float_handling: str = "none"
    float_replacement_value: float = 0.0
    allow_partial: bool = Field(
        default=False,
        description="Treat a bulk response with some rejected items as a success",
    )
    server_version: str | None = Field(
        default=None,
        description="Assume this server version instead of asking the cluster",
    )


class ElasticsearchTransport:
    """Bulk transport backed by the official ``elasticsearch`` client."""

    def __init__(self, client: Elasticsearch) -> None:
        self.client = client

    @classmethod
    def from_config(cls, config: ElasticsearchLoaderConfig) -> ElasticsearchTransport:
        kwargs: dict[str, Any] = {
            "hosts": config.urls,
            "request_timeout": config.timeout_s,
            "http_compress": config.enable_gzip,
            "sniff_on_start": config.enable_sniffer,
            "max_retries": 0,
            "retry_on_timeout": False,
        }
        if config.username and config.password:
            kwargs["basic_auth"] = (config.username, config.password)
        if config.auth_bearer_token:
            kwargs["bearer_auth"] = config.auth_bearer_token
        if config.tls_ca is not None:
            kwargs["ca_certs"] = str(config.tls_ca)
        if config.insecure_skip_verify:
            kwargs["verify_certs"] = False
            kwargs["ssl_show_warn"] = False
        return cls(Elasticsearch(**kwargs))

    def server_version(self) -> str:
        return str(self.client.info()["version"]["number"])

    def submit(self, operations: list[dict[str, Any]], timeout: float) -> dict[str, Any]:
        response = self.client.options(request_timeout=timeout).bulk(operations=operations)
        return dict(response.body)

    def close(self) -> None:
        self.client.close()


@registry.loader("elasticsearch")
class ElasticsearchLoader(Loader[ElasticsearchLoaderConfig]):
    """Write MetricBatches to Elasticsearch through a :class:`DocumentRouter`.

    A ``transport`` may be injected (tests, custom clients); otherwise one is
    built from the config in :meth:`setup` and closed in :meth:`teardown`.
    """

    config_class = ElasticsearchLoaderConfig

    def __init__(
        self,
        config: ElasticsearchLoaderConfig,
        transport: BulkTransport | None = None,
    ) -> None:
        super().__init__(config)
        self._transport = transport
        self._owns_transport = transport is None
        self.router: DocumentRouter | None = None
        self.last_outcome: BatchOutcome | None = None

    def validate_config(self) -> None:
        cfg = self.config
        if not cfg.urls and self._transport is None:
            raise ConfigurationError("elasticsearch urls are not defined")
        if not cfg.index_name:
            raise ConfigurationError("elasticsearch index_name is not defined")
        try:
            FloatPolicy(cfg.float_handling or FloatPolicy.NONE)
        except ValueError:
            raise ConfigurationError(f"invalid float_handling type {cfg.float_handling!r}") from None

    def setup(self) -> None:
        if self.router is not None:
            return
        self.validate_config()
        cfg = self.config

        rules = RoutingRules.build(
            cfg.index_name,
            cfg.use_pipeline,
            default_tag_value=cfg.default_tag_value,
            default_pipeline=cfg.default_pipeline,
            float_policy=cfg.float_handling or FloatPolicy.NONE,
            float_replacement=cfg.float_replacement_value,
            force_document_id=cfg.force_document_id,
        )

        if self._transport is None:
            self._transport = ElasticsearchTransport.from_config(cfg)
        version = self._detect_version()
        schema = TargetSchema.for_version(version)
        if isinstance(self._transport, ElasticsearchTransport) and major_version(version) < CLIENT_MIN_MAJOR:
            raise ConfigurationError(
                f"elasticsearch {version} is older than the bundled client supports "
                f"({CLIENT_MIN_MAJOR}.0+); inject a BulkTransport for this cluster"
            )

        self.router = DocumentRouter(
            rules,
            self._transport,
            schema,
            timeout=cfg.timeout_s,
            allow_partial=cfg.allow_partial,
        )
        log.info(
            "router.setup",
            index=cfg.index_name,
            pipeline=cfg.use_pipeline or None,
            schema=schema.value,
            float_handling=rules.float_policy.value,
        )

    def _detect_version(self) -> str:
        if self.config.server_version:
            return self.config.server_version
        if not isinstance(self._transport, ElasticsearchTransport):
            raise ConfigurationError("server_version is required with a custom transport")
        try:
            version = self._transport.server_version()
        except Exception as exc:
            raise TransportError(f"elasticsearch version check failed: {exc}") from exc
        log.info("router.server_version", version=version)
        return version

    def load(self, batch: MetricBatch) -> None:
        if self.router is None:
            raise RuntimeError("ElasticsearchLoader.setup() must be called before load()")
        try:
            self.last_outcome = self.router.write_batch(batch.metrics)
        except PartialIndexFailure as exc:
            self.last_outcome = exc.outcome
            self._tally(exc.outcome)
            raise
        except TransportError:
            if self.metrics is not None:
                self.metrics.record_transport_error()
            raise
        self._tally(self.last_outcome)

    def _tally(self, outcome: BatchOutcome) -> None:
        # an empty batch never reaches the store
        if self.metrics is not None and outcome.total:
            self.metrics.record_bulk(outcome)

    def teardown(self) -> None:
        if self._owns_transport and isinstance(self._transport, ElasticsearchTransport):
            self._transport.close()
            self._transport = None
        self.router = None
