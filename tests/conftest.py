"""Shared fixtures for sketch tests."""

from __future__ import annotations

import pytest

from freqsketch import CountMinSketch
from tests.mocks import FixedHashStrategy


@pytest.fixture
def small_sketch() -> CountMinSketch:
    """A 3x3 sketch where 'a' and 'b' collide only in row 0."""
    strategy = FixedHashStrategy({"a": [0, 0, 0], "b": [0, 1, 2], "c": [1, 0, 0]})
    return CountMinSketch(width=3, depth=3, hash_strategy=strategy)


@pytest.fixture
def standard_sketch() -> CountMinSketch:
    return CountMinSketch(width=2000, depth=5)
