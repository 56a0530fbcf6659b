"""Tests for sketch factory and configuration."""

import pytest

from freqsketch import (
    DEFAULT_HASH_STRATEGY,
    CountMinSketch,
    CountMinSketchConfig,
    InvalidParameterError,
    SketchFactory,
    SketchPreset,
    XXHashStrategy,
    create_sketch,
    merge,
)


# ============================================================================
# Configuration Tests
# ============================================================================


class TestCountMinSketchConfig:
    """Tests for CountMinSketchConfig."""

    def test_defaults(self):
        config = CountMinSketchConfig()

        assert config.width == 2000
        assert config.depth == 5
        assert config.num_counters == 10000
        assert config.error_rate == pytest.approx(0.001)
        assert config.confidence == pytest.approx(1 - 1 / 32)

    def test_for_error_and_confidence(self):
        """Test analytic sizing."""
        config = CountMinSketchConfig.for_error_and_confidence(
            error_rate=0.01, confidence=0.99, name="clicks"
        )

        assert config.width == 200
        assert config.depth == 7
        assert config.name == "clicks"

    @pytest.mark.parametrize(
        "kwargs",
        [{"width": 0}, {"depth": 0}, {"width": -3}, {"width": 2.5}, {"depth": True}],
    )
    def test_invalid_dimensions(self, kwargs):
        with pytest.raises(InvalidParameterError):
            CountMinSketchConfig(**kwargs)

    @pytest.mark.parametrize(
        "error_rate,confidence",
        [
            (0, 0.99),
            (-0.1, 0.99),
            (0.01, 0),
            (0.01, 1.0),
            (0.01, 1.5),
            (float("inf"), 0.99),
            (1e-320, 0.99),
            ("0.01", 0.99),
        ],
    )
    def test_invalid_targets(self, error_rate, confidence):
        with pytest.raises(InvalidParameterError):
            CountMinSketchConfig.for_error_and_confidence(error_rate, confidence)

    def test_frozen(self):
        config = CountMinSketchConfig()
        with pytest.raises(AttributeError):
            config.width = 10


# ============================================================================
# Factory Tests
# ============================================================================


class TestSketchFactory:
    """Tests for SketchFactory."""

    @pytest.mark.parametrize(
        "preset,width,depth",
        [
            (SketchPreset.MINIMAL, 500, 3),
            (SketchPreset.STANDARD, 2000, 5),
            (SketchPreset.HIGH_ACCURACY, 10000, 7),
            (SketchPreset.MAXIMUM, 50000, 10),
        ],
    )
    def test_presets(self, preset, width, depth):
        cms = SketchFactory().create(preset=preset)

        assert cms.width == width
        assert cms.depth == depth

    def test_config_wins_over_preset(self):
        """Test that an explicit config overrides the preset."""
        config = CountMinSketchConfig(width=123, depth=4)
        cms = SketchFactory().create(preset=SketchPreset.MAXIMUM, config=config)

        assert (cms.width, cms.depth) == (123, 4)

    def test_rejects_non_config(self):
        with pytest.raises(InvalidParameterError, match="CountMinSketchConfig"):
            SketchFactory().create(config={"width": 10})

    def test_create_countmin_dimensions(self):
        cms = SketchFactory().create_countmin(width=300, depth=2)
        assert (cms.width, cms.depth) == (300, 2)

    def test_create_countmin_targets(self):
        """Test that error_rate plus confidence sizes the sketch."""
        cms = SketchFactory().create_countmin(error_rate=0.01, confidence=0.99)

        assert (cms.width, cms.depth) == (200, 7)
        assert cms.error_rate == 0.01
        assert cms.confidence == 0.99

    def test_for_frequency(self):
        cms = SketchFactory().for_frequency()
        assert (cms.width, cms.depth) == (2000, 7)

    def test_default_strategy(self):
        cms = SketchFactory().create()
        assert cms.hash_strategy is DEFAULT_HASH_STRATEGY

    def test_shared_strategy_is_merge_compatible(self):
        """Test that sketches from one factory can be merged."""
        factory = SketchFactory(hash_strategy=XXHashStrategy(seed=3))
        a = factory.create(preset=SketchPreset.MINIMAL)
        b = factory.create(preset=SketchPreset.MINIMAL)
        a.add("k", 2)
        b.add("k", 3)

        merged = merge([a, b])

        assert a.hash_strategy is b.hash_strategy
        assert merged.check("k") >= 5


# ============================================================================
# Convenience Function Tests
# ============================================================================


class TestCreateSketch:
    """Tests for create_sketch."""

    def test_no_arguments(self):
        cms = create_sketch()

        assert isinstance(cms, CountMinSketch)
        assert (cms.width, cms.depth) == (2000, 5)

    @pytest.mark.parametrize("name", ["minimal", "MINIMAL", "Minimal"])
    def test_string_preset(self, name):
        cms = create_sketch(name)
        assert (cms.width, cms.depth) == (500, 3)

    def test_unknown_preset(self):
        """Test that an unknown preset name lists the choices."""
        with pytest.raises(InvalidParameterError, match="Unknown preset") as excinfo:
            create_sketch("enormous")

        assert "standard" in excinfo.value.context["choices"]

    def test_kwargs(self):
        cms = create_sketch(width=5000, depth=7)
        assert (cms.width, cms.depth) == (5000, 7)

    def test_accuracy_kwargs(self):
        cms = create_sketch(error_rate=0.001, confidence=0.99)
        assert (cms.width, cms.depth) == (2000, 7)
