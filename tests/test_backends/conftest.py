"""Shared fixtures for backend tests."""

from __future__ import annotations

import pytest

from tests.fakes import TickingClock


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()
