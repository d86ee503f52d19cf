"""argoqc init-config — write a default configuration file."""

from __future__ import annotations

from pathlib import Path

import click

from argoqc.cli.utils import console, error_handler


@click.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--overwrite", is_flag=True, help="Replace an existing file.")
@error_handler
def init_config(path: Path, overwrite: bool) -> None:
    """Write the default pipeline configuration to PATH as YAML."""
    from argoqc.core.config import PipelineConfig

    if path.exists() and not overwrite:
        console.print(f"[red]Error:[/red] {path} already exists (use --overwrite)")
        raise SystemExit(1)
    path.parent.mkdir(parents=True, exist_ok=True)
    PipelineConfig().to_yaml(path)
    console.print(f"[green]Wrote default configuration to {path}[/green]")
