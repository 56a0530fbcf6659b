"""Tests for merging sketches.

This module tests:
    - merge into a new sketch and merge_into an existing one
    - Validation of width, depth and hash strategy identity
    - Identity, associativity and saturation of combined tables
"""

import logging

import numpy as np
import pytest

from freqsketch import (
    INT32_MAX,
    CountMinSketch,
    FNV1aHashStrategy,
    IncompatibleSketchesError,
    InvalidParameterError,
    SketchStateError,
    merge,
    merge_into,
    validate_merge,
)


def _filled(width=500, depth=4, prefix="k", n=200, strategy=None):
    cms = CountMinSketch(width, depth, hash_strategy=strategy)
    for i in range(n):
        cms.add(f"{prefix}_{i % 50}", (i % 3) + 1)
    return cms


# ============================================================================
# Merge Tests
# ============================================================================


class TestMerge:
    """Tests for merge into a new sketch."""

    def test_sums_counts(self):
        """Test that merged estimates are the sum of the inputs."""
        cms1 = CountMinSketch(2000, 5)
        cms2 = CountMinSketch(2000, 5)

        cms1.add("item", 100)
        cms2.add("item", 50)

        merged = merge([cms1, cms2])

        assert merged.check("item") >= 150
        assert merged.elements_added == 150
        assert merged is not cms1
        assert cms1.check("item") == 100

    def test_copies_metadata_from_first(self):
        """Test that dimensions, strategy and targets come from the first source."""
        cms1 = CountMinSketch.init_optimal(error_rate=0.01, confidence=0.9)
        cms2 = CountMinSketch(cms1.width, cms1.depth)

        merged = merge([cms1, cms2])

        assert merged.width == cms1.width
        assert merged.depth == cms1.depth
        assert merged.hash_strategy is cms1.hash_strategy
        assert merged.error_rate == 0.01
        assert merged.confidence == 0.9

    def test_table_is_elementwise_sum(self):
        """Test bin-by-bin combination."""
        a = _filled(prefix="a")
        b = _filled(prefix="b")

        merged = merge([a, b])

        expected = a.counters.astype(np.int64) + b.counters.astype(np.int64)
        assert np.array_equal(merged.counters, expected)
        assert merged.elements_added == a.elements_added + b.elements_added

    def test_single_source(self):
        """Test that merging one sketch copies it."""
        a = _filled()
        merged = merge([a])

        assert np.array_equal(merged.counters, a.counters)
        assert merged.elements_added == a.elements_added

    def test_identity(self):
        """Test merging with an all-zero compatible sketch changes nothing."""
        a = _filled()
        empty = CountMinSketch(a.width, a.depth)

        merged = merge([a, empty])

        assert np.array_equal(merged.counters, a.counters)
        assert merged.elements_added == a.elements_added

    def test_associativity(self):
        """Test merging [A, B, C] equals merging [A, B] then C."""
        a = _filled(prefix="a")
        b = _filled(prefix="b")
        c = _filled(prefix="c")

        at_once = merge([a, b, c])
        stepwise = merge_into(merge([a, b]), [c])

        assert np.array_equal(at_once.counters, stepwise.counters)
        assert at_once.elements_added == stepwise.elements_added

    def test_method_form(self):
        """Test CountMinSketch.merge with several others."""
        a = _filled(prefix="a")
        b = _filled(prefix="b")
        c = _filled(prefix="c")

        assert np.array_equal(a.merge(b, c).counters, merge([a, b, c]).counters)

    def test_empty_sources(self):
        """Test that merging nothing is rejected."""
        with pytest.raises(InvalidParameterError, match="at least one"):
            merge([])

    def test_saturates(self, caplog):
        """Test that merged counters clamp at INT32_MAX."""
        a = CountMinSketch(10, 2)
        b = CountMinSketch(10, 2)
        a.add("hot", INT32_MAX - 10)
        b.add("hot", 100)

        with caplog.at_level(logging.WARNING, logger="freqsketch"):
            merged = merge([a, b])

        assert merged.check("hot") == INT32_MAX
        assert merged.counters.min() >= 0
        assert "saturated 2 counters" in caplog.text


# ============================================================================
# Merge Into Tests
# ============================================================================


class TestMergeInto:
    """Tests for merging into an existing target."""

    def test_accumulates(self):
        """Test that the target keeps its prior counts."""
        target = CountMinSketch(2000, 5)
        target.add("item", 10)
        source = CountMinSketch(2000, 5)
        source.add("item", 5)

        result = merge_into(target, [source])

        assert result is target
        assert target.check("item") == 15
        assert target.elements_added == 15
        assert source.check("item") == 5

    def test_merge_inplace_method(self):
        """Test CountMinSketch.merge_inplace."""
        target = _filled(prefix="t")
        a = _filled(prefix="a")
        expected = target.counters.astype(np.int64) + a.counters

        target.merge_inplace(a)

        assert np.array_equal(target.counters, expected)

    def test_self_merge_doubles(self):
        """Test merging a sketch into itself."""
        cms = CountMinSketch(100, 3)
        cms.add("x", 4)

        cms.merge_inplace(cms)

        assert cms.check("x") == 8
        assert cms.elements_added == 8

    def test_no_sources(self):
        """Test that an empty source list leaves the target alone."""
        target = _filled()
        before = target.counters.copy()

        merge_into(target, [])

        assert np.array_equal(target.counters, before)


# ============================================================================
# Validation Tests
# ============================================================================


class TestValidation:
    """Tests for merge compatibility checks."""

    def test_different_width(self):
        """Test that differing widths fail and leave inputs unchanged."""
        cms1 = _filled(width=1000)
        cms2 = _filled(width=2000)
        before1 = cms1.counters.copy()
        before2 = cms2.counters.copy()

        with pytest.raises(IncompatibleSketchesError, match="width=\\(1000/2000\\)"):
            merge([cms1, cms2])
        with pytest.raises(IncompatibleSketchesError):
            merge_into(cms1, [cms2])

        assert np.array_equal(cms1.counters, before1)
        assert np.array_equal(cms2.counters, before2)

    def test_different_depth(self):
        """Test that differing depths fail."""
        with pytest.raises(IncompatibleSketchesError, match="depth=\\(4/5\\)"):
            merge([CountMinSketch(100, 4), CountMinSketch(100, 5)])

    def test_different_strategy_instance(self):
        """Test that equal-behaving but distinct strategies are incompatible."""
        cms1 = CountMinSketch(100, 4, hash_strategy=FNV1aHashStrategy())
        cms2 = CountMinSketch(100, 4, hash_strategy=FNV1aHashStrategy())

        with pytest.raises(IncompatibleSketchesError, match="hash="):
            merge([cms1, cms2])

    def test_shared_strategy_instance(self):
        """Test that sharing one strategy instance is compatible."""
        strategy = FNV1aHashStrategy()
        cms1 = CountMinSketch(100, 4, hash_strategy=strategy)
        cms2 = CountMinSketch(100, 4, hash_strategy=strategy)

        validate_merge([cms1, cms2])

    def test_late_mismatch_does_not_partially_merge(self):
        """Test that a bad source at the end blocks the whole merge."""
        target = _filled(prefix="t")
        good = _filled(prefix="g")
        bad = CountMinSketch(target.width + 1, target.depth)
        before = target.counters.copy()
        before_added = target.elements_added

        with pytest.raises(IncompatibleSketchesError):
            merge_into(target, [good, good, bad])

        assert np.array_equal(target.counters, before)
        assert target.elements_added == before_added

    def test_error_context(self):
        """Test the structured context on the error."""
        with pytest.raises(IncompatibleSketchesError) as excinfo:
            merge([CountMinSketch(10, 2), CountMinSketch(10, 2), CountMinSketch(11, 2)])

        error = excinfo.value
        assert error.context["position"] == 2
        assert error.context["width"] == (10, 11)
        assert error.to_dict()["category"] == "merge"

    def test_destroyed_source(self):
        """Test that destroyed sketches cannot take part in a merge."""
        a = CountMinSketch(10, 2)
        b = CountMinSketch(10, 2)
        b.destroy()

        with pytest.raises(SketchStateError):
            merge([a, b])
        with pytest.raises(SketchStateError):
            merge_into(b, [a])
