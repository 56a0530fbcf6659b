"""Factory for creating Count-Min Sketches.

Provides a unified interface for creating sketches from presets, explicit
dimensions or accuracy targets.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Any

from freqsketch.countmin import CountMinSketch
from freqsketch.errors import InvalidParameterError
from freqsketch.protocols import CountMinSketchConfig, HashStrategy


class SketchPreset(Enum):
    """Preset configurations for common use cases."""

    # Low memory, lower accuracy
    MINIMAL = auto()
    # Balanced memory/accuracy
    STANDARD = auto()
    # Higher memory, better accuracy
    HIGH_ACCURACY = auto()
    # Maximum accuracy, most memory
    MAXIMUM = auto()


_PRESETS: dict[SketchPreset, CountMinSketchConfig] = {
    SketchPreset.MINIMAL: CountMinSketchConfig(width=500, depth=3),  # ~6KB, 0.4%
    SketchPreset.STANDARD: CountMinSketchConfig(width=2000, depth=5),  # ~40KB, 0.1%
    SketchPreset.HIGH_ACCURACY: CountMinSketchConfig(width=10000, depth=7),  # ~280KB
    SketchPreset.MAXIMUM: CountMinSketchConfig(width=50000, depth=10),  # ~2MB
}


class SketchFactory:
    """Factory for creating Count-Min Sketches.

    A factory can carry a hash strategy that every sketch it creates
    shares, which keeps those sketches merge-compatible.

    Example:
        factory = SketchFactory()

        # Create with preset
        cms = factory.create(preset=SketchPreset.STANDARD)

        # Create with custom dimensions
        cms = factory.create_countmin(width=5000, depth=7)

        # Size from accuracy targets
        cms = factory.for_frequency(error_rate=0.001, confidence=0.99)
    """

    def __init__(self, hash_strategy: HashStrategy | None = None) -> None:
        self.hash_strategy = hash_strategy

    def create(
        self,
        preset: SketchPreset | None = None,
        config: CountMinSketchConfig | None = None,
        **kwargs: Any,
    ) -> CountMinSketch:
        """Create a sketch from a preset, a config or keyword options.

        Args:
            preset: Optional preset configuration
            config: Optional custom configuration (wins over preset)
            **kwargs: Options for create_countmin when neither is given

        Returns:
            Configured sketch instance
        """
        if config is None and preset is not None:
            config = _PRESETS[preset]

        if config is not None:
            if not isinstance(config, CountMinSketchConfig):
                raise InvalidParameterError(
                    f"Expected CountMinSketchConfig, got {type(config).__name__}"
                )
            return CountMinSketch.from_config(config, self.hash_strategy)
        return self.create_countmin(**kwargs)

    def create_countmin(
        self,
        width: int = 2000,
        depth: int = 5,
        error_rate: float | None = None,
        confidence: float | None = None,
    ) -> CountMinSketch:
        """Create a sketch with explicit dimensions or accuracy targets.

        Args:
            width: Number of counters per row
            depth: Number of rows (hashes per key)
            error_rate: If provided with confidence, sizes the sketch
                analytically instead
            confidence: Probability the error bound holds

        Returns:
            Configured CountMinSketch instance
        """
        if error_rate is not None and confidence is not None:
            return CountMinSketch.init_optimal(error_rate, confidence, self.hash_strategy)
        return CountMinSketch.init(width, depth, self.hash_strategy)

    def for_frequency(
        self,
        error_rate: float = 0.001,
        confidence: float = 0.99,
    ) -> CountMinSketch:
        """Create a sketch sized for target accuracy."""
        return self.create_countmin(error_rate=error_rate, confidence=confidence)


# Module-level factory instance for convenience
_factory = SketchFactory()


def create_sketch(
    preset: SketchPreset | str | None = None,
    **kwargs: Any,
) -> CountMinSketch:
    """Create a Count-Min Sketch.

    Convenience function for creating sketches without instantiating the
    factory.

    Args:
        preset: Preset configuration ("minimal", "standard",
            "high_accuracy", "maximum")
        **kwargs: width/depth or error_rate/confidence

    Example:
        cms = create_sketch("standard")
        cms = create_sketch(width=5000, depth=7)
        cms = create_sketch(error_rate=0.001, confidence=0.99)
    """
    if isinstance(preset, str):
        try:
            preset = SketchPreset[preset.upper()]
        except KeyError as e:
            raise InvalidParameterError(
                f"Unknown preset: {preset!r}",
                context={"choices": [p.name.lower() for p in SketchPreset]},
            ) from e

    return _factory.create(preset=preset, **kwargs)
