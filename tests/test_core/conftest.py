"""Shared fixtures for core module tests."""

from __future__ import annotations

import numpy as np
import pytest

from argoqc.core.models import WorkItem
from argoqc.core.naming import NameParser


@pytest.fixture
def parser() -> NameParser:
    return NameParser()


@pytest.fixture
def item() -> WorkItem:
    """A well-named two-channel work item."""
    data = np.arange(2 * 8 * 8, dtype=np.uint16).reshape(2, 8, 8)
    return WorkItem(
        id="42",
        name="lsm980_o63x_z1.2_oil_ArgoSLG511_b_d20230223_1.czi",
        pixel_loader=lambda: data,
    )
