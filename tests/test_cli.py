"""Tests for the ``mdr`` command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from mdr.__version__ import __version__
from mdr.cli import main as cli_main
from mdr.cli.main import cli


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    """Keep structlog pointed at pytest's streams instead of the runner's."""
    calls: list[dict] = []
    monkeypatch.setattr(cli_main, "configure_logging", lambda **kw: calls.append(kw))
    return calls


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _ndjson(tmp_path: Path, names: list[str]) -> Path:
    path = tmp_path / "metrics.ndjson"
    lines = [
        json.dumps(
            {
                "name": name,
                "timestamp": "2024-03-05T00:00:00Z",
                "tags": {"host": "web01"},
                "fields": {"value": 1.0},
            }
        )
        for name in names
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _json_file(path: Path, data: dict) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestVersionAndStages:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_stages_lists_plugins(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["stages"])
        assert result.exit_code == 0
        for name in ("ndjson", "name_filter", "elasticsearch"):
            assert name in result.output

    def test_log_options_forwarded(self, runner: CliRunner, _quiet_logging: list[dict]) -> None:
        runner.invoke(cli, ["--log-level", "DEBUG", "--log-format", "json", "version"])
        assert _quiet_logging == [{"level": "DEBUG", "fmt": "json"}]


class TestResolve:
    def test_index_name(self, runner: CliRunner) -> None:
        result = runner.invoke(
            cli,
            [
                "resolve",
                "metrics-{{host}}-%Y.%m.%d",
                "--tag",
                "host=web01",
                "--time",
                "2024-03-05T10:00:00Z",
            ],
        )
        assert result.exit_code == 0
        assert "metrics-web01-2024.03.05" in result.output
        assert "metrics-%s-%Y.%m.%d" in result.output

    def test_missing_tag_reported(self, runner: CliRunner) -> None:
        result = runner.invoke(
            cli,
            ["resolve", "m-{{dc}}", "--default", "none", "--time", "2024-03-05T00:00:00Z"],
        )
        assert result.exit_code == 0
        assert "missing tags" in result.output
        assert "m-none" in result.output

    def test_pipeline_mode(self, runner: CliRunner) -> None:
        result = runner.invoke(
            cli, ["resolve", "{{es_pipeline}}", "--pipeline", "--default", "base"]
        )
        assert result.exit_code == 0
        assert "base" in result.output

    def test_bad_tag_pair(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["resolve", "m-{{host}}", "--tag", "host"])
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_bad_time(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["resolve", "m-%Y", "--time", "yesterday"])
        assert result.exit_code == 2


class TestRun:
    def test_dry_run(self, runner: CliRunner, tmp_path: Path) -> None:
        source = _ndjson(tmp_path, ["cpu", "mem", "cpu"])
        ext_cfg = _json_file(tmp_path / "ext.json", {"path": str(source), "batch_size": 2})
        result = runner.invoke(
            cli,
            ["run", "--extractor", "ndjson", "--extractor-config", str(ext_cfg), "--dry-run"],
        )
        assert result.exit_code == 0, result.output
        assert "batches   : 2" in result.output
        assert "metrics   : 3" in result.output

    def test_transformer_config_applied(self, runner: CliRunner, tmp_path: Path) -> None:
        source = _ndjson(tmp_path, ["cpu", "mem", "cpu"])
        ext_cfg = _json_file(tmp_path / "ext.json", {"path": str(source)})
        flt_cfg = _json_file(tmp_path / "flt.json", {"include": ["cpu"]})
        result = runner.invoke(
            cli,
            [
                "run",
                "--extractor", "ndjson",
                "--extractor-config", str(ext_cfg),
                "--transformer", "name_filter",
                "--transformer-config", str(flt_cfg),
                "--dry-run",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "in=3 out=2" in result.output

    def test_unknown_extractor(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["run", "--extractor", "kafka"])
        assert result.exit_code == 2
        assert "Unknown extractor" in result.output

    def test_invalid_loader_config_fails_run(self, runner: CliRunner, tmp_path: Path) -> None:
        source = _ndjson(tmp_path, ["cpu"])
        ext_cfg = _json_file(tmp_path / "ext.json", {"path": str(source)})
        es_cfg = _json_file(tmp_path / "es.json", {"index_name": "metrics-%Y"})
        result = runner.invoke(
            cli,
            [
                "run",
                "--extractor", "ndjson",
                "--extractor-config", str(ext_cfg),
                "--loader", "elasticsearch",
                "--loader-config", str(es_cfg),
            ],
        )
        assert result.exit_code == 1
        assert "errors" in result.output
