"""Shared fixtures for IO module tests."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import tifffile

from tests.fakes import acquisition_name, write_acquisition


@pytest.fixture
def acquisition(tmp_path: Path) -> Path:
    """A single (2, 64, 64) acquisition with a 0.5 um pixel size."""
    return write_acquisition(tmp_path, acquisition_name(1))


@pytest.fixture
def multi_series(tmp_path: Path) -> Path:
    """A TIFF holding two series of different shapes."""
    path = tmp_path / "stack.tif"
    with tifffile.TiffWriter(str(path)) as tw:
        tw.write(np.zeros((2, 32, 32), dtype=np.uint16), photometric="minisblack",
                 metadata={"axes": "CYX"})
        tw.write(np.ones((3, 16, 24), dtype=np.uint16), photometric="minisblack",
                 metadata={"axes": "CYX"})
    return path
