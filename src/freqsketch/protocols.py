"""Protocol and configuration definitions for frequency sketches.

This module defines the interfaces the sketch, its hash strategies and
its merge partners implement, plus the frozen configuration and metrics
records shared across the package.
"""

from __future__ import annotations

import math
import numbers
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol, Sequence, TypeVar, Union, runtime_checkable

from freqsketch.errors import InvalidParameterError

Key = Union[str, bytes, bytearray, memoryview]
S = TypeVar("S", bound="MergeableSketch")

LOG_TWO = math.log(2.0)


def _is_count(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool) and value >= 1


@runtime_checkable
class HashStrategy(Protocol):
    """Derives one 64-bit hash per sketch row from a key.

    Implementations must be deterministic for a given ``(num_hashes, key)``.
    Two sketches can only be merged when they hold the *same* strategy
    instance, so strategies are compared by identity, never by value.
    """

    @abstractmethod
    def derive(self, num_hashes: int, key: Key) -> Sequence[int]:
        """Return ``num_hashes`` unsigned 64-bit values for ``key``."""
        ...


@runtime_checkable
class FrequencyEstimator(Protocol):
    """Protocol for structures that estimate element frequencies."""

    @abstractmethod
    def add(self, key: Key, weight: int = 1) -> int:
        """Add ``weight`` occurrences of ``key``."""
        ...

    @abstractmethod
    def check(self, key: Key) -> int:
        """Estimate the frequency of ``key``."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Reset the estimator to its initial state."""
        ...


@runtime_checkable
class MergeableSketch(Protocol):
    """Protocol for sketches that can be merged for distributed counting."""

    @abstractmethod
    def merge(self: S, *others: S) -> S:
        """Merge ``others`` together with this sketch into a new sketch."""
        ...

    @abstractmethod
    def merge_inplace(self: S, *others: S) -> None:
        """Merge ``others`` into this sketch."""
        ...


@dataclass(frozen=True)
class SketchMetrics:
    """Metrics about a sketch's state and accuracy.

    Attributes:
        elements_added: Net weight added (additions minus removals)
        memory_bytes: Size of the counter table
        estimated_error: Error rate as a fraction of elements_added
        fill_ratio: Fraction of counters that are non-zero
    """

    elements_added: int = 0
    memory_bytes: int = 0
    estimated_error: float = 0.0
    fill_ratio: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "elements_added": self.elements_added,
            "memory_bytes": self.memory_bytes,
            "estimated_error": self.estimated_error,
            "fill_ratio": self.fill_ratio,
        }


def optimal_dimensions(error_rate: float, confidence: float) -> tuple[int, int]:
    """Compute ``(width, depth)`` for a target error rate and confidence.

    width = ceil(2 / error_rate)
    depth = ceil(-ln(1 - confidence) / ln 2)

    Raises:
        InvalidParameterError: If either target is not a finite number,
            error_rate <= 0, confidence <= 0, confidence >= 1, or
            error_rate is too small for 2 / error_rate to be finite.
    """
    for name, value in (("error_rate", error_rate), ("confidence", confidence)):
        if not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise InvalidParameterError(
                f"Unable to size the count-min sketch: {name} must be a "
                f"finite number, got {value!r}",
                context={name: value},
            )
    if error_rate <= 0 or confidence <= 0:
        raise InvalidParameterError(
            "Unable to size the count-min sketch: error_rate and confidence "
            "must both be positive",
            context={"error_rate": error_rate, "confidence": confidence},
        )
    if confidence >= 1:
        raise InvalidParameterError(
            f"confidence must be below 1, got {confidence}",
            context={"confidence": confidence},
        )
    raw_width = 2.0 / error_rate
    if not math.isfinite(raw_width):
        raise InvalidParameterError(
            f"error_rate {error_rate!r} is too small to size a sketch",
            context={"error_rate": error_rate},
        )
    width = max(1, int(math.ceil(raw_width)))
    depth = int(math.ceil(-math.log(1.0 - confidence) / LOG_TWO))
    return width, max(1, depth)


@dataclass(frozen=True)
class CountMinSketchConfig:
    """Configuration for a Count-Min Sketch.

    Attributes:
        width: Number of counters per row (affects accuracy)
        depth: Number of rows / hashes per key (affects confidence)
        name: Optional name for identification
    """

    width: int = 2000
    depth: int = 5
    name: str = ""

    def __post_init__(self) -> None:
        if not _is_count(self.width):
            raise InvalidParameterError(
                f"width must be a positive integer, got {self.width!r}",
                context={"width": self.width},
            )
        if not _is_count(self.depth):
            raise InvalidParameterError(
                f"depth must be a positive integer, got {self.depth!r}",
                context={"depth": self.depth},
            )

    @property
    def error_rate(self) -> float:
        """Expected error rate: 2/width."""
        return 2.0 / self.width

    @property
    def confidence(self) -> float:
        """Confidence level: 1 - 2^-depth."""
        return 1.0 - 1.0 / (2.0**self.depth)

    @property
    def num_counters(self) -> int:
        return self.width * self.depth

    @classmethod
    def for_error_and_confidence(
        cls,
        error_rate: float = 0.001,
        confidence: float = 0.99,
        name: str = "",
    ) -> "CountMinSketchConfig":
        """Create config for a target error rate and confidence.

        Args:
            error_rate: Maximum overestimate (as a ratio of elements added)
            confidence: Probability that the error bound holds

        Returns:
            CountMinSketchConfig with appropriate dimensions
        """
        width, depth = optimal_dimensions(error_rate, confidence)
        return cls(width=width, depth=depth, name=name)
