"""argoqc run-local / run-omero / list-local — run or preview a QC pipeline."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from argoqc.cli.utils import (
    console,
    error_handler,
    load_config,
    make_progress,
    print_run_summary,
)

_analyzer_option = click.option(
    "--analyzer", "analyzer_path", required=True,
    help="Ring analyzer implementation as 'package.module:ClassName'.",
)
_config_option = click.option(
    "--config", "config_path", default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML configuration file (see 'argoqc init-config').",
)
_all_option = click.option(
    "--all", "process_all", is_flag=True,
    help="Revisit every acquisition and start a fresh summary table.",
)
_no_heatmaps_option = click.option(
    "--no-heatmaps", is_flag=True, help="Do not publish heatmap images.",
)


def infer_microscope(input_dir: Path) -> str | None:
    """Microscope name parsed from the first well-formed TIFF name in a folder."""
    from argoqc.core.naming import NameParser
    from argoqc.io.tiff import list_tiff_files

    parser = NameParser()
    for path in list_tiff_files(input_dir):
        parsed = parser.parse(path.name)
        if parsed.microscope:
            return parsed.microscope
    return None


def _run_pipeline(pipeline, container: str, target: str | None = None):  # type: ignore[no-untyped-def]
    with make_progress() as progress:
        task = progress.add_task("Analysing...", total=None)

        def on_progress(current: int, total: int, name: str) -> None:
            progress.update(task, total=total, completed=current, description=f"Analysed {name}")

        return pipeline.run(container, target=target, progress_callback=on_progress)


@click.command("run-local")
@click.argument(
    "input_dir", type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@_analyzer_option
@click.option(
    "--microscope", default=None,
    help="Microscope name of the results folder. Parsed from the image names if omitted.",
)
@_config_option
@_all_option
@_no_heatmaps_option
@error_handler
def run_local(
    input_dir: Path,
    output_dir: Path,
    analyzer_path: str,
    microscope: str | None,
    config_path: Path | None,
    process_all: bool,
    no_heatmaps: bool,
) -> None:
    """Analyse the TIFF images of INPUT_DIR and save results under OUTPUT_DIR."""
    from argoqc.backends.local import LocalSink, LocalSource, resolve_container
    from argoqc.pipeline import Pipeline, load_analyzer

    config = load_config(config_path, process_all, no_heatmaps)
    analyzer = load_analyzer(analyzer_path)

    microscope = microscope or infer_microscope(input_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    container = resolve_container(output_dir, microscope)
    console.print(f"Results folder: {container}")

    source = LocalSource(
        container / config.naming.markers_file, config.naming, config.process_all,
    )
    sink = LocalSink(container, config.naming)
    result = _run_pipeline(
        Pipeline(source, sink, analyzer, config), str(input_dir), target=str(container),
    )
    print_run_summary(result)


@click.command("run-omero")
@click.argument("dataset_id", type=int)
@click.option("--host", required=True, help="OMERO server host.")
@click.option("--user", required=True, help="OMERO user name.")
@click.option("--password", required=True, prompt=True, hide_input=True, help="OMERO password.")
@click.option("--port", default=4064, show_default=True, type=int, help="OMERO server port.")
@_analyzer_option
@_config_option
@_all_option
@_no_heatmaps_option
@error_handler
def run_omero(
    dataset_id: int,
    host: str,
    user: str,
    password: str,
    port: int,
    analyzer_path: str,
    config_path: Path | None,
    process_all: bool,
    no_heatmaps: bool,
) -> None:
    """Analyse the images of an OMERO dataset and publish results on the server."""
    from argoqc.backends.remote import RemoteSink, RemoteSource
    from argoqc.pipeline import Pipeline, load_analyzer

    config = load_config(config_path, process_all, no_heatmaps)
    analyzer = load_analyzer(analyzer_path)

    try:
        from argoqc.backends.omero_adapter import OmeroRepository

        repository = OmeroRepository(host, user, password, port=port)
    except ImportError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    with repository:
        source = RemoteSource(repository, config.naming, config.process_all)
        sink = RemoteSink(repository, dataset_id, config.naming)
        result = _run_pipeline(
            Pipeline(source, sink, analyzer, config), str(dataset_id),
        )
    print_run_summary(result)


@click.command("list-local")
@click.argument(
    "input_dir", type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--microscope", default=None, help="Microscope name of the results folder.")
@_all_option
@error_handler
def list_local(
    input_dir: Path, output_dir: Path, microscope: str | None, process_all: bool,
) -> None:
    """Show which images of INPUT_DIR the next run would analyse."""
    from argoqc.backends.local import LocalSource, find_container
    from argoqc.core.config import NamingConfig

    naming = NamingConfig()
    container = find_container(output_dir, microscope or infer_microscope(input_dir))
    source = LocalSource(container / naming.markers_file, naming, process_all)
    items = source.list(str(input_dir))

    table = Table(title=f"Selected items in {input_dir}")
    table.add_column("Item")
    table.add_column("Pixel size (um)", justify="right")
    table.add_column("Markers")
    for item in items:
        size = f"{item.pixel_size_um:.4g}" if item.pixel_size_um else "-"
        table.add_row(item.name, size, ", ".join(sorted(item.tags)))
    console.print(table)
    console.print(f"{len(items)} item(s) selected")
