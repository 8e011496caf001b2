"""Tests for the Elasticsearch loader and its bulk transport."""

from __future__ import annotations

from pathlib import Path
from unittest import mock

import pytest

from mdr.core.schema import TargetSchema
from mdr.errors import ConfigurationError, PartialIndexFailure, TransportError
from mdr.models.metric import MetricBatch
from mdr.observability.metrics import PipelineMetrics
from mdr.plugins.loaders.elasticsearch import (
    ElasticsearchLoader,
    ElasticsearchLoaderConfig,
    ElasticsearchTransport,
)
from tests.conftest import FakeTransport, bulk_response, make_metric


def _config(**overrides: object) -> ElasticsearchLoaderConfig:
    values: dict[str, object] = {
        "index_name": "metrics-{{host}}-%Y.%m.%d",
        "server_version": "8.13.2",
    }
    values.update(overrides)
    return ElasticsearchLoaderConfig(**values)


def _mock_client(version: str = "8.13.2", response: dict | None = None) -> mock.MagicMock:
    client = mock.MagicMock()
    client.info.return_value = {"version": {"number": version}}
    client.options.return_value.bulk.return_value.body = response or bulk_response([201])
    return client


# --------------------------------------------------------------------------- #
#  Configuration                                                               #
# --------------------------------------------------------------------------- #


class TestValidateConfig:
    def test_urls_required_without_transport(self) -> None:
        loader = ElasticsearchLoader(_config())
        with pytest.raises(ConfigurationError, match="urls"):
            loader.validate_config()

    def test_index_name_required(self, transport: FakeTransport) -> None:
        loader = ElasticsearchLoader(_config(index_name=""), transport=transport)
        with pytest.raises(ConfigurationError, match="index_name"):
            loader.validate_config()

    def test_invalid_float_handling(self, transport: FakeTransport) -> None:
        loader = ElasticsearchLoader(_config(float_handling="clamp"), transport=transport)
        with pytest.raises(ConfigurationError, match="float_handling"):
            loader.validate_config()

    def test_valid_with_urls(self) -> None:
        ElasticsearchLoader(_config(urls=["http://localhost:9200"])).validate_config()

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            _config(timeout_s=0)


# --------------------------------------------------------------------------- #
#  Setup / version detection                                                   #
# --------------------------------------------------------------------------- #


class TestSetup:
    def test_configured_version_selects_schema(self, transport: FakeTransport) -> None:
        loader = ElasticsearchLoader(_config(server_version="6.8.0"), transport=transport)
        loader.setup()
        assert loader.router is not None
        assert loader.router.schema is TargetSchema.TYPED

    def test_custom_transport_needs_version(self, transport: FakeTransport) -> None:
        loader = ElasticsearchLoader(_config(server_version=None), transport=transport)
        with pytest.raises(ConfigurationError, match="server_version"):
            loader.setup()

    def test_version_read_from_cluster(self) -> None:
        client = _mock_client(version="8.11.4")
        loader = ElasticsearchLoader(
            _config(server_version=None), transport=ElasticsearchTransport(client)
        )
        loader.setup()
        client.info.assert_called_once()
        assert loader.router is not None
        assert loader.router.schema is TargetSchema.TYPELESS

    @pytest.mark.parametrize("version", ["7.17.1", "6.8.0", "5.6.16"])
    def test_bundled_client_refuses_pre_8_cluster(self, version: str) -> None:
        client = _mock_client(version=version)
        loader = ElasticsearchLoader(
            _config(server_version=None), transport=ElasticsearchTransport(client)
        )
        with pytest.raises(ConfigurationError, match="bundled client"):
            loader.setup()
        assert loader.router is None
        client.options.return_value.bulk.assert_not_called()

    def test_bundled_client_refuses_configured_pre_8_version(self) -> None:
        loader = ElasticsearchLoader(
            _config(server_version="7.10.2"), transport=ElasticsearchTransport(_mock_client())
        )
        with pytest.raises(ConfigurationError, match="inject a BulkTransport"):
            loader.setup()

    def test_injected_transport_writes_typed_bulk(
        self, transport: FakeTransport, sample_batch: MetricBatch
    ) -> None:
        loader = ElasticsearchLoader(_config(server_version="6.8.23"), transport=transport)
        loader.setup()
        loader.load(sample_batch)
        assert all(a["index"]["_type"] == "metrics" for a in transport.actions)

    def test_unsupported_version(self) -> None:
        loader = ElasticsearchLoader(
            _config(server_version=None),
            transport=ElasticsearchTransport(_mock_client(version="2.4.6")),
        )
        with pytest.raises(ConfigurationError, match="not supported"):
            loader.setup()

    def test_version_check_failure(self) -> None:
        client = _mock_client()
        client.info.side_effect = ConnectionError("refused")
        loader = ElasticsearchLoader(
            _config(server_version=None), transport=ElasticsearchTransport(client)
        )
        with pytest.raises(TransportError, match="version check failed"):
            loader.setup()

    def test_setup_is_idempotent(self, transport: FakeTransport) -> None:
        loader = ElasticsearchLoader(_config(), transport=transport)
        loader.setup()
        router = loader.router
        loader.setup()
        assert loader.router is router

    def test_owned_transport_built_and_closed(self) -> None:
        client = _mock_client()
        with mock.patch(
            "mdr.plugins.loaders.elasticsearch.Elasticsearch", return_value=client
        ) as es_cls:
            loader = ElasticsearchLoader(_config(urls=["http://es:9200"]))
            loader.setup()
            loader.teardown()
        es_cls.assert_called_once()
        client.close.assert_called_once()
        assert loader.router is None

    def test_injected_transport_not_closed(self) -> None:
        client = _mock_client()
        loader = ElasticsearchLoader(_config(), transport=ElasticsearchTransport(client))
        loader.setup()
        loader.teardown()
        client.close.assert_not_called()


# --------------------------------------------------------------------------- #
#  Loading                                                                     #
# --------------------------------------------------------------------------- #


class TestLoad:
    def test_load_before_setup(self, transport: FakeTransport, sample_batch: MetricBatch) -> None:
        loader = ElasticsearchLoader(_config(), transport=transport)
        with pytest.raises(RuntimeError, match="setup"):
            loader.load(sample_batch)

    def test_load_sends_one_bulk_request(
        self, transport: FakeTransport, sample_batch: MetricBatch
    ) -> None:
        loader = ElasticsearchLoader(_config(), transport=transport)
        loader.setup()
        loader.load(sample_batch)
        assert len(transport.calls) == 1
        assert [a["index"]["_index"] for a in transport.actions] == [
            f"metrics-web{i:02d}-2024.03.05" for i in range(5)
        ]
        assert loader.last_outcome is not None and loader.last_outcome.ok

    def test_timeout_from_config(
        self, transport: FakeTransport, sample_batch: MetricBatch
    ) -> None:
        loader = ElasticsearchLoader(_config(timeout_s=12.0), transport=transport)
        loader.setup()
        loader.load(sample_batch)
        assert transport.calls[0][1] == 12.0

    def test_partial_failure(self, sample_batch: MetricBatch) -> None:
        transport = FakeTransport(bulk_response([201, 400, 201, 201, 409]))
        loader = ElasticsearchLoader(_config(), transport=transport)
        loader.setup()
        with pytest.raises(PartialIndexFailure, match="failed to index 2 metric"):
            loader.load(sample_batch)
        assert loader.last_outcome is not None
        assert loader.last_outcome.succeeded == [0, 2, 3]

    def test_allow_partial(self, sample_batch: MetricBatch) -> None:
        transport = FakeTransport(bulk_response([201, 400, 201, 201, 201]))
        loader = ElasticsearchLoader(_config(allow_partial=True), transport=transport)
        loader.setup()
        loader.load(sample_batch)
        assert loader.last_outcome is not None
        assert loader.last_outcome.failed_count == 1

    def test_float_handling_replace(self, transport: FakeTransport) -> None:
        loader = ElasticsearchLoader(
            _config(float_handling="replace", float_replacement_value=5.0),
            transport=transport,
        )
        loader.setup()
        loader.load(MetricBatch(metrics=[make_metric(fields={"x": float("inf")})]))
        assert transport.documents[0]["cpu"] == {"x": 5.0}


# --------------------------------------------------------------------------- #
#  ElasticsearchTransport                                                      #
# --------------------------------------------------------------------------- #


class TestElasticsearchTransport:
    def test_submit_uses_per_request_timeout(self) -> None:
        client = _mock_client(response=bulk_response([201]))
        ops = [{"index": {"_index": "i"}}, {"a": 1}]
        out = ElasticsearchTransport(client).submit(ops, 3.0)
        client.options.assert_called_once_with(request_timeout=3.0)
        client.options.return_value.bulk.assert_called_once_with(operations=ops)
        assert out["items"][0]["index"]["status"] == 201

    def test_server_version(self) -> None:
        assert ElasticsearchTransport(_mock_client(version="8.1.0")).server_version() == "8.1.0"

    def test_from_config_client_options(self, tmp_path: Path) -> None:
        ca = tmp_path / "ca.pem"
        cfg = _config(
            urls=["https://es:9200"],
            timeout_s=7.0,
            enable_gzip=True,
            username="elastic",
            password="secret",
            tls_ca=ca,
            insecure_skip_verify=True,
        )
        with mock.patch("mdr.plugins.loaders.elasticsearch.Elasticsearch") as es_cls:
            ElasticsearchTransport.from_config(cfg)
        kwargs = es_cls.call_args.kwargs
        assert kwargs["hosts"] == ["https://es:9200"]
        assert kwargs["request_timeout"] == 7.0
        assert kwargs["http_compress"] is True
        assert kwargs["basic_auth"] == ("elastic", "secret")
        assert kwargs["ca_certs"] == str(ca)
        assert kwargs["verify_certs"] is False
        assert kwargs["max_retries"] == 0
        assert kwargs["retry_on_timeout"] is False
        assert "bearer_auth" not in kwargs

    def test_from_config_bearer_token(self) -> None:
        cfg = _config(urls=["http://es:9200"], auth_bearer_token="tok")
        with mock.patch("mdr.plugins.loaders.elasticsearch.Elasticsearch") as es_cls:
            ElasticsearchTransport.from_config(cfg)
        kwargs = es_cls.call_args.kwargs
        assert kwargs["bearer_auth"] == "tok"
        assert "basic_auth" not in kwargs


# --------------------------------------------------------------------------- #
#  Indexing counters                                                           #
# --------------------------------------------------------------------------- #


class TestLoaderMetrics:
    def _loader(self, transport: FakeTransport, **overrides: object) -> ElasticsearchLoader:
        loader = ElasticsearchLoader(_config(**overrides), transport=transport)
        loader.metrics = PipelineMetrics("host-metrics")
        loader.setup()
        return loader

    def test_indexed_documents_counted(
        self, transport: FakeTransport, sample_batch: MetricBatch
    ) -> None:
        loader = self._loader(transport)
        loader.load(sample_batch)
        loader.load(sample_batch)
        assert loader.metrics is not None
        tally = loader.metrics.indexing
        assert tally.bulk_requests == 2
        assert tally.documents_indexed == 10
        assert tally.documents_failed == 0

    def test_rejected_documents_counted_before_raising(self, sample_batch: MetricBatch) -> None:
        response = bulk_response(
            [201, 429, 201, 201, 201],
            {1: {"type": "es_rejected_execution_exception", "reason": "queue full"}},
        )
        loader = self._loader(FakeTransport(response))
        with pytest.raises(PartialIndexFailure):
            loader.load(sample_batch)
        assert loader.metrics is not None
        tally = loader.metrics.indexing
        assert tally.documents_indexed == 4
        assert tally.documents_failed == 1
        assert tally.failure_types == {"es_rejected_execution_exception": 1}

    def test_transport_error_counted(self, sample_batch: MetricBatch) -> None:
        loader = self._loader(FakeTransport(exc=TransportError("connection reset")))
        with pytest.raises(TransportError):
            loader.load(sample_batch)
        assert loader.metrics is not None
        tally = loader.metrics.indexing
        assert tally.transport_errors == 1
        assert tally.documents_sent == 0

    def test_empty_batch_not_counted(self, transport: FakeTransport) -> None:
        loader = self._loader(transport)
        loader.load(MetricBatch())
        assert loader.metrics is not None
        assert loader.metrics.indexing.bulk_requests == 0
        assert transport.calls == []

    def test_without_metrics_attached(
        self, transport: FakeTransport, sample_batch: MetricBatch
    ) -> None:
        loader = ElasticsearchLoader(_config(), transport=transport)
        loader.setup()
        loader.load(sample_batch)
        assert loader.metrics is None
