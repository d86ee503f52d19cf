"""Shared test fixtures for argoqc."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from argoqc.core.config import NamingConfig
from tests.fakes import FakeRepository, acquisition_name, write_acquisition


@pytest.fixture
def naming() -> NamingConfig:
    return NamingConfig()


@pytest.fixture
def acquisition_folder(tmp_path: Path) -> Callable[[int], Path]:
    """Factory writing ``n`` well-named acquisitions (indices 1..n) into a folder."""

    def make(n: int = 3) -> Path:
        folder = tmp_path / "acquisitions"
        folder.mkdir(exist_ok=True)
        for i in range(1, n + 1):
            write_acquisition(folder, acquisition_name(i))
        return folder

    return make


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository()
