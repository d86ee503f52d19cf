"""argoqc CLI — top-level Click group."""

from __future__ import annotations

import click


@click.group()
@click.version_option(package_name="argoqc")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging and full tracebacks on errors.")
def cli(verbose: bool) -> None:
    """argoqc — quality control of microscopes from calibration-slide images."""
    from argoqc.cli import utils

    utils.verbose = verbose
    utils.setup_logging(debug=verbose)


def _register_commands() -> None:
    """Register all subcommands — imports deferred to avoid loading heavy deps at startup."""
    from argoqc.cli.config_cmd import init_config
    from argoqc.cli.run import list_local, run_local, run_omero

    cli.add_command(init_config)
    cli.add_command(list_local)
    cli.add_command(run_local)
    cli.add_command(run_omero)


_register_commands()
