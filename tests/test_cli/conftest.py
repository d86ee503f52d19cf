"""Shared fixtures for CLI module tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from click.testing import CliRunner
from rich.logging import RichHandler


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _wide_console(monkeypatch):
    """Keep Rich from wrapping long temporary paths in captured output."""
    from argoqc.cli import utils

    monkeypatch.setattr(utils.console, "width", 250)


@pytest.fixture(autouse=True)
def _drop_rich_handlers():
    """Remove the log handlers installed by the CLI group after each test."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"
