"""Shared fixtures for pipeline tests."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from argoqc.backends.local import LocalSink, LocalSource
from tests.fakes import FakeRepository, TickingClock, acquisition_name, write_acquisition


@pytest.fixture
def acquisitions(tmp_path: Path) -> Path:
    """Five single-channel acquisitions named ``..._1.tif`` to ``..._5.tif``."""
    folder = tmp_path / "acquisitions"
    folder.mkdir()
    for i in range(1, 6):
        write_acquisition(folder, acquisition_name(i), channels=1)
    return folder


@pytest.fixture
def results(tmp_path: Path) -> Path:
    folder = tmp_path / "results" / "lsm980"
    folder.mkdir(parents=True)
    return folder


@pytest.fixture
def local_backend(results: Path):
    """Factory for a (source, sink) pair sharing the results marker file."""
    clock = TickingClock()

    def make(process_all: bool = False) -> tuple[LocalSource, LocalSink]:
        source = LocalSource(results / "markers.yaml", process_all=process_all)
        return source, LocalSink(results, clock=clock)

    return make


@pytest.fixture
def remote_dataset(fake_repo: FakeRepository) -> int:
    """A dataset of five single-channel images."""
    dataset = fake_repo.add_dataset("lsm980_qc")
    rng = np.random.default_rng(7)
    for i in range(1, 6):
        fake_repo.add_image(dataset, acquisition_name(i), data=rng.random((1, 64, 64)))
    return dataset
