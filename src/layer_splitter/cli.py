"""Command line interface for splitting and merging image archives."""

from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import typer

from .core.config import SETTINGS, load_plan_file
from .core.logging import log, setup_logging
from .exceptions import InternalError, LayerSplitterError, UsageError
from .merge import merge_splits
from .split import split_image
from .utils.validator import parse_layer_count

app = typer.Typer(add_completion=False, help="Split or merge docker image archives")

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERNAL = 70

T = TypeVar("T")


def _configure_logging(silence: bool, log_format: Optional[str]) -> None:
    fmt = (log_format or SETTINGS.LOG_FORMAT).lower()
    if fmt not in ("json", "plain", "auto"):
        typer.echo(f"❌ Unknown log format '{fmt}' (json|plain|auto)", err=True)
        raise typer.Exit(EXIT_USAGE)
    setup_logging(fmt, quiet=silence)  # type: ignore[arg-type]


def _run(action: Callable[[], T]) -> T:
    """Run an operation and translate its errors into exit codes."""
    try:
        return action()
    except UsageError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(EXIT_USAGE) from e
    except InternalError as e:
        # the workspace is already cleaned up; stop before producing anything else
        log.critical("internal_error", error=str(e), exc_info=True)
        raise typer.Exit(EXIT_INTERNAL) from e
    except LayerSplitterError as e:
        log.error("operation.failed", kind=type(e).__name__, error=str(e))
        raise typer.Exit(EXIT_FAILURE) from e


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",")]


def _resolve_plan(
    names: Optional[str], layers: Optional[str], config: Optional[Path]
) -> tuple[List[str], List[int]]:
    if config is not None:
        if names is not None or layers is not None:
            raise UsageError("Option '--config' conflicts with '--names' and '--layers'")
        plan = load_plan_file(config)
        return plan.names, plan.layers

    if names is None and layers is None:
        raise UsageError("Either '--config' or both '--names' and '--layers' are required")
    if names is None or layers is None:
        raise UsageError("Options '--names' and '--layers' must be given together")
    return _split_csv(names), [parse_layer_count(v) for v in _split_csv(layers)]


@app.command()
def split(
    target: Path = typer.Option(..., "--target", "-t", help="Path of target image tar file"),
    names: Optional[str] = typer.Option(
        None, "--names", "-n", metavar="STRING,STRING...", help="Names of the splits"
    ),
    layers: Optional[str] = typer.Option(
        None, "--layers", "-l", metavar="INT,INT...", help="Layer number of splits (-1 for the rest)"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Pick names and layers from a JSON/YAML/TOML file"
    ),
    work: Optional[Path] = typer.Option(
        None, "--work", "-w", help="Path of temporary working directory"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Path of output directory"),
    level: Optional[str] = typer.Option(
        None, "--level", "-v", help="Compress level of split files: 0-9 or none/fast/default/best"
    ),
    silence: bool = typer.Option(False, "--silence", "-s", help="Only print warnings and errors"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="json|plain|auto"),
) -> None:
    """Split an image tar file into chained .tar.gz splits."""
    _configure_logging(silence, log_format)

    def action() -> List[Path]:
        split_names, split_layers = _resolve_plan(names, layers, config)
        return split_image(
            target,
            split_names,
            split_layers,
            work_dir=work,
            output_dir=output,
            compress_level=level,
        )

    outputs = _run(action)
    if not silence:
        for path in outputs:
            typer.echo(str(path))


@app.command()
def merge(
    target: Path = typer.Option(
        ..., "--target", "-t", help="Path of target directory of .tar.gz split files"
    ),
    work: Optional[Path] = typer.Option(
        None, "--work", "-w", help="Path of temporary working directory"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Path of output directory"),
    silence: bool = typer.Option(False, "--silence", "-s", help="Only print warnings and errors"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="json|plain|auto"),
) -> None:
    """Verify split files and merge them into merge.tar."""
    _configure_logging(silence, log_format)
    output_path = _run(lambda: merge_splits(target, work_dir=work, output_dir=output))
    if not silence:
        typer.echo(str(output_path))


@app.command()
def version() -> None:
    from . import __version__

    typer.echo(__version__)


def main() -> None:
    app()
