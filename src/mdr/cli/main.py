"""MDR command-line interface.

Usage::

    mdr --help
    mdr run --extractor ndjson --loader elasticsearch ...
    mdr resolve "metrics-{{host}}-%Y.%m.%d" --tag host=web01
    mdr stages
    mdr version
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console
from rich.table import Table

from mdr.__version__ import __version__
from mdr.observability.logging import configure_logging

console = Console()


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    show_default=True,
    help="Log verbosity level.",
)
@click.option(
    "--log-format",
    default="console",
    type=click.Choice(["console", "json"], case_sensitive=False),
    show_default=True,
    help="Log output format.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_format: str) -> None:
    """Metric Document Router (MDR): route and bulk-write metrics to a document store."""
    ctx.ensure_object(dict)
    configure_logging(level=log_level, fmt=log_format)  # type: ignore[arg-type]


# --------------------------------------------------------------------------- #
#  mdr version                                                                 #
# --------------------------------------------------------------------------- #


@cli.command()
def version() -> None:
    """Print the MDR version."""
    console.print(f"[bold cyan]Metric Document Router[/] v{__version__}")


# --------------------------------------------------------------------------- #
#  mdr stages                                                                  #
# --------------------------------------------------------------------------- #


@cli.command()
def stages() -> None:
    """List all registered pipeline stage plugins."""
    import mdr.plugins  # noqa: F401, PLC0415
    from mdr.core.registry import registry  # noqa: PLC0415

    data = registry.all_stages()

    for category, names in data.items():
        table = Table(title=category.upper(), show_header=False, box=None)
        table.add_column("name", style="green")
        for n in names:
            table.add_row(n)
        console.print(table)


# --------------------------------------------------------------------------- #
#  mdr resolve                                                                 #
# --------------------------------------------------------------------------- #


def _parse_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {value!r}", param_hint="--time") from None


def _parse_tags(pairs: tuple[str, ...]) -> dict[str, str]:
    tags: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--tag")
        tags[key] = value
    return tags


@cli.command()
@click.argument("template")
@click.option("--tag", "tag_pairs", multiple=True, help="Tag as KEY=VALUE (repeatable).")
@click.option(
    "--time",
    "at",
    default=None,
    help="ISO-8601 timestamp to resolve against (default: now, UTC).",
)
@click.option(
    "--default",
    "default_tag_value",
    default="",
    help="Value for missing tags (fallback pipeline with --pipeline).",
)
@click.option("--pipeline", is_flag=True, default=False, help="Resolve as a pipeline name.")
def resolve(
    template: str,
    tag_pairs: tuple[str, ...],
    at: Optional[str],
    default_tag_value: str,
    pipeline: bool,
) -> None:
    """Show how TEMPLATE resolves for the given tags and time."""
    from mdr.core.pattern import compile_pattern, resolve_index_name, resolve_pipeline_name

    tags = _parse_tags(tag_pairs)
    ts = _parse_time(at) if at else datetime.now(timezone.utc)
    pattern = compile_pattern(template)

    if pipeline:
        resolved = resolve_pipeline_name(pattern, tags, default_tag_value)
    else:
        resolved = resolve_index_name(pattern, ts, tags, default_tag_value)

    table = Table(show_header=False, box=None)
    table.add_column("key", style="cyan")
    table.add_column("value")
    table.add_row("template", template)
    table.add_row("normalized", pattern.normalized)
    table.add_row("tag keys", ", ".join(pattern.tag_keys) or "-")
    table.add_row("date specifiers", "yes" if pattern.has_date else "no")
    missing = [k for k in pattern.tag_keys if k not in tags]
    if missing:
        table.add_row("missing tags", ", ".join(missing), style="yellow")
    table.add_row("resolved", f"[bold green]{resolved or '(none)'}[/]")
    console.print(table)


# --------------------------------------------------------------------------- #
#  mdr run                                                                     #
# --------------------------------------------------------------------------- #


@cli.command()
@click.option("--extractor", "extractor_name", required=True, help="Extractor plugin name.")
@click.option("--loader", "loader_name", default=None, help="Loader plugin name.")
@click.option(
    "--extractor-config",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="JSON file with extractor config.",
)
@click.option(
    "--loader-config",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="JSON file with loader config.",
)
@click.option(
    "--transformer",
    "transformer_names",
    multiple=True,
    help="Transformer plugin names (repeatable, applied in order).",
)
@click.option(
    "--transformer-config",
    "transformer_configs",
    multiple=True,
    type=click.Path(exists=True, path_type=Path),
    help="JSON config per --transformer, in the same order.",
)
@click.option("--pipeline-name", default="mdr-run", show_default=True)
@click.option("--dry-run", is_flag=True, default=False, help="Extract and transform only; skip loading.")
@click.option("--max-batches", default=None, type=int, help="Stop after N batches.")
def run(
    extractor_name: str,
    loader_name: Optional[str],
    extractor_config: Optional[Path],
    loader_config: Optional[Path],
    transformer_names: tuple[str, ...],
    transformer_configs: tuple[Path, ...],
    pipeline_name: str,
    dry_run: bool,
    max_batches: Optional[int],
) -> None:
    """Run a pipeline from the command line using registered plugins."""
    import mdr.plugins  # noqa: F401
    from mdr.core.pipeline import Pipeline, PipelineConfig
    from mdr.core.registry import registry

    if len(transformer_configs) > len(transformer_names):
        raise click.UsageError("more --transformer-config files than --transformer names")

    ext_cls = _lookup(registry.get_extractor, extractor_name, "--extractor")
    ext_cfg_data = _load_json(extractor_config) if extractor_config else {}
    extractor = ext_cls(ext_cls.config_class(**ext_cfg_data))

    transformers = []
    for i, tname in enumerate(transformer_names):
        t_cls = _lookup(registry.get_transformer, tname, "--transformer")
        t_cfg_data = _load_json(transformer_configs[i]) if i < len(transformer_configs) else {}
        transformers.append(t_cls(t_cls.config_class(**t_cfg_data)))

    loader = None
    if loader_name and not dry_run:
        loader_cls = _lookup(registry.get_loader, loader_name, "--loader")
        loader_cfg_data = _load_json(loader_config) if loader_config else {}
        loader = loader_cls(loader_cls.config_class(**loader_cfg_data))

    pipeline = Pipeline(
        config=PipelineConfig(
            name=pipeline_name,
            dry_run=dry_run,
            max_batches=max_batches,
        ),
        extractor=extractor,
        transformers=transformers,
        loader=loader,
    )

    result = pipeline.run()
    console.print(result.summary())

    if not result.ok:
        sys.exit(1)


def _lookup(getter: Callable[[str], type], name: str, param_hint: str) -> type:
    try:
        return getter(name)
    except KeyError as exc:
        raise click.BadParameter(exc.args[0], param_hint=param_hint) from None


def _load_json(path: Path) -> dict:
    with open(path) as fh:
        return json.load(fh)
