"""Shared fixtures for measurement module tests."""

from __future__ import annotations

import pytest

from argoqc.core.models import Channel
from argoqc.measure.heatmap import HeatmapBuilder
from tests.fakes import make_channel


@pytest.fixture
def channel() -> Channel:
    """A 64x64 channel with 8 rings on a 3x3 lattice.

    The reference region is centred at (32, 33) and the lattice is rotated
    by 0.5 degrees.
    """
    return make_channel(0)


@pytest.fixture
def builder() -> HeatmapBuilder:
    return HeatmapBuilder(ring_spacing_um=5.0, canvas_height=256)
