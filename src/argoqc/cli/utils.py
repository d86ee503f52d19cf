"""Shared CLI utilities — Rich console, logging setup, error handling, config loading."""

from __future__ import annotations

import dataclasses
import functools
import logging
import traceback
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

if TYPE_CHECKING:
    from argoqc.core.config import PipelineConfig
    from argoqc.pipeline.engine import RunResult

console = Console()

# Set by the --verbose flag on the top-level CLI group.
verbose: bool = False


def setup_logging(debug: bool = False) -> None:
    """Route the log stream through Rich on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(RichHandler(console=console, show_path=debug, rich_tracebacks=debug))
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator wrapping CLI commands with standard error handling.

    Catches QCError (exit 1) and unexpected exceptions (exit 2).
    With --verbose, unexpected errors include the full traceback.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        from argoqc.core.exceptions import QCError

        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except QCError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise SystemExit(1)
        except Exception as e:
            if verbose:
                console.print(f"[red]Internal error:[/red] {e}")
                console.print(traceback.format_exc())
            else:
                console.print(
                    f"[red]Internal error:[/red] {type(e).__name__}: {e}\n"
                    "[dim]Use --verbose for the full traceback.[/dim]"
                )
            raise SystemExit(2)

    return wrapper


def make_progress() -> Progress:
    """Create a Rich progress bar for CLI operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    )


def load_config(
    path: Path | None, process_all: bool, no_heatmaps: bool,
) -> PipelineConfig:
    """Load a YAML configuration (or defaults) and apply command-line flags.

    Raises:
        SystemExit: With code 1 if the file is invalid.
    """
    from argoqc.core.config import PipelineConfig

    try:
        config = PipelineConfig.from_yaml(path) if path is not None else PipelineConfig()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    return dataclasses.replace(
        config,
        process_all=config.process_all or process_all,
        save_heatmaps=config.save_heatmaps and not no_heatmaps,
    )


def print_run_summary(result: RunResult) -> None:
    """Print per-item outcomes and the published summary table."""
    table = Table(title=f"QC run on {result.container}")
    table.add_column("Item")
    table.add_column("Status")
    table.add_column("Message", style="dim")
    for item in result.items:
        status = "[green]completed[/green]" if item.ok else "[red]failed[/red]"
        table.add_row(item.name, status, item.message)
    console.print(table)
    console.print(f"  Completed: {len(result.completed)}")
    console.print(f"  Failed: {len(result.failed)}")
    console.print(f"  Summary table: {result.table_name or '-'}")
    console.print(f"  Elapsed: {result.elapsed_seconds:.1f}s")
