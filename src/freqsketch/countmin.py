"""Count-Min Sketch for frequency estimation.

Count-Min Sketch is a probabilistic data structure for estimating
frequencies of keys in a data stream with fixed memory.

The table is a flat, row-major array of signed 32-bit counters with
``depth`` rows of ``width`` columns. Row ``i`` owns the index range
``[i * width, (i + 1) * width)``. A key is hashed once per row and the
row's bin is ``(hash[i] % width) + i * width``.

Properties:
    - Space: width x depth x 4 bytes
    - Update/query time: O(depth)
    - ``check`` never underestimates a key that was only added
    - Overestimates by at most error_rate * elements_added with
      probability >= confidence

Estimators:
    check:           minimum over rows (the classic Count-Min estimate)
    check_mean:      truncated mean over rows (lower variance, may undercount)
    check_mean_min:  median of per-row noise-corrected residuals
                     (Count-Mean-Min, reduces overestimation bias)

Counters saturate at the int32 bounds instead of wrapping; see
:mod:`freqsketch.arithmetic`.

The sketch is a single-threaded structure. Callers sharing one instance
across threads must provide their own locking.

Reference:
    Cormode, G., & Muthukrishnan, S. (2005). "An improved data stream summary:
    the count-min sketch and its applications."
    Deng, F., & Rafiei, D. (2007). "New estimation algorithms for streaming
    data: Count-min can do more."
"""

from __future__ import annotations

import itertools
import logging
import numbers
from typing import TYPE_CHECKING, Any, BinaryIO, Iterable, Sequence

import numpy as np

from freqsketch.arithmetic import (
    clamp_int32,
    clamp_int64,
    pinned_mask,
    saturating_add,
    saturating_sub,
)
from freqsketch.errors import (
    AllocationFailureError,
    InsufficientHashesError,
    InvalidParameterError,
    SketchStateError,
)
from freqsketch.hashing import DEFAULT_HASH_STRATEGY, MASK64
from freqsketch.protocols import (
    CountMinSketchConfig,
    HashStrategy,
    Key,
    SketchMetrics,
    optimal_dimensions,
)

if TYPE_CHECKING:
    from freqsketch.serialization import SketchFormat

logger = logging.getLogger(__name__)


def _trunc_div(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _validate_weight(weight: Any) -> int:
    if isinstance(weight, bool) or not isinstance(weight, numbers.Integral) or weight < 0:
        raise InvalidParameterError(
            f"weight must be a non-negative integer, got {weight!r}",
            context={"weight": weight},
        )
    return int(weight)


def _validate_dimension(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise InvalidParameterError(
            f"Unable to initialize the count-min sketch: {name} must be a "
            f"positive integer, got {value!r}",
            context={name: value},
        )
    return int(value)


class CountMinSketch:
    """Count-Min Sketch frequency estimator.

    Example:
        cms = CountMinSketch(width=10000, depth=7)
        for domain in stream:
            cms.add(domain)

        cms.check("example.com")           # min estimate
        cms.check_mean_min("example.com")  # bias-corrected estimate

        # Size from accuracy targets instead
        cms = CountMinSketch.init_optimal(error_rate=0.001, confidence=0.99)

    Attributes:
        width: Counters per row
        depth: Rows (and hashes per key)
        elements_added: Net weight added minus removed
        error_rate: Overestimate bound as a fraction of elements_added
        confidence: Probability that the error bound holds
        hash_strategy: Strategy deriving the per-row hashes
    """

    def __init__(
        self,
        width: int = 2000,
        depth: int = 5,
        hash_strategy: HashStrategy | None = None,
    ) -> None:
        """Allocate a zeroed width x depth table.

        Args:
            width: Number of counters per row (>= 1)
            depth: Number of rows / hashes per key (>= 1)
            hash_strategy: Strategy for deriving row hashes. If None, the
                shared FNV-1a default is used.

        Raises:
            InvalidParameterError: If width or depth is not a positive integer
            AllocationFailureError: If the counter table cannot be allocated
        """
        width = _validate_dimension("width", width)
        depth = _validate_dimension("depth", depth)
        self._setup(
            width,
            depth,
            error_rate=2.0 / width,
            confidence=1.0 - 1.0 / (2.0**depth),
            hash_strategy=hash_strategy,
        )

    def _setup(
        self,
        width: int,
        depth: int,
        error_rate: float,
        confidence: float,
        hash_strategy: HashStrategy | None,
    ) -> None:
        if hash_strategy is not None and not isinstance(hash_strategy, HashStrategy):
            raise InvalidParameterError(
                f"hash_strategy must provide derive(num_hashes, key), "
                f"got {type(hash_strategy).__name__}"
            )
        try:
            counters = np.zeros(width * depth, dtype=np.int32)
        except (MemoryError, ValueError) as e:
            raise AllocationFailureError(
                f"Failed to allocate {width * depth * 4} bytes for counters",
                cause=e,
                context={"width": width, "depth": depth},
            ) from e

        self._width = width
        self._depth = depth
        self._error_rate = error_rate
        self._confidence = confidence
        self._elements_added = 0
        self._counters = counters
        self._row_offsets = np.arange(depth, dtype=np.int64) * width
        self._hash_strategy: HashStrategy | None = (
            DEFAULT_HASH_STRATEGY if hash_strategy is None else hash_strategy
        )
        self._destroyed = False
        logger.debug(
            f"Initialized count-min sketch {width}x{depth} "
            f"(error_rate={error_rate:.6f}, confidence={confidence:.6f})"
        )

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def init(
        cls,
        width: int,
        depth: int,
        hash_strategy: HashStrategy | None = None,
    ) -> "CountMinSketch":
        """Create a sketch with explicit dimensions."""
        return cls(width, depth, hash_strategy)

    @classmethod
    def init_optimal(
        cls,
        error_rate: float,
        confidence: float,
        hash_strategy: HashStrategy | None = None,
    ) -> "CountMinSketch":
        """Create a sketch sized for a target error rate and confidence.

        width = ceil(2 / error_rate), depth = ceil(-ln(1 - confidence) / ln 2).
        The requested error_rate and confidence are kept on the sketch.

        Raises:
            InvalidParameterError: If either target is non-finite,
                error_rate <= 0, confidence <= 0 or confidence >= 1
        """
        width, depth = optimal_dimensions(error_rate, confidence)
        width = _validate_dimension("width", width)
        depth = _validate_dimension("depth", depth)
        sketch = cls.__new__(cls)
        sketch._setup(width, depth, error_rate, confidence, hash_strategy)
        return sketch

    @classmethod
    def from_config(
        cls,
        config: CountMinSketchConfig,
        hash_strategy: HashStrategy | None = None,
    ) -> "CountMinSketch":
        """Create a sketch from a CountMinSketchConfig."""
        return cls(config.width, config.depth, hash_strategy)

    @classmethod
    def _from_parts(
        cls,
        width: int,
        depth: int,
        error_rate: float,
        confidence: float,
        hash_strategy: HashStrategy | None,
        elements_added: int = 0,
        counters: np.ndarray | None = None,
    ) -> "CountMinSketch":
        """Rebuild a sketch from its fields (used by merge and import)."""
        sketch = cls.__new__(cls)
        sketch._setup(width, depth, error_rate, confidence, hash_strategy)
        sketch._elements_added = elements_added
        if counters is not None:
            sketch._counters[:] = counters
        return sketch

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def clear(self) -> None:
        """Zero every counter and reset elements_added."""
        self._require_initialized()
        self._counters.fill(0)
        self._elements_added = 0
        logger.debug(f"Cleared count-min sketch {self._width}x{self._depth}")

    def destroy(self) -> None:
        """Release the counter table and reset every field.

        Safe to call more than once. A destroyed sketch rejects every
        further operation with SketchStateError.
        """
        if self._destroyed:
            return
        logger.debug(f"Destroying count-min sketch {self._width}x{self._depth}")
        self._counters = np.zeros(0, dtype=np.int32)
        self._row_offsets = np.zeros(0, dtype=np.int64)
        self._width = 0
        self._depth = 0
        self._error_rate = 0.0
        self._confidence = 0.0
        self._elements_added = 0
        self._hash_strategy = None
        self._destroyed = True

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def _require_initialized(self) -> None:
        if self._destroyed:
            raise SketchStateError("Count-min sketch has been destroyed")

    # =========================================================================
    # Attributes
    # =========================================================================

    @property
    def width(self) -> int:
        return self._width

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def elements_added(self) -> int:
        """Net weight added minus removed."""
        return self._elements_added

    @property
    def error_rate(self) -> float:
        return self._error_rate

    @property
    def confidence(self) -> float:
        return self._confidence

    @property
    def hash_strategy(self) -> HashStrategy | None:
        return self._hash_strategy

    @property
    def counters(self) -> np.ndarray:
        """Read-only flat view of the counter table (row-major)."""
        view = self._counters.view()
        view.flags.writeable = False
        return view

    @property
    def table(self) -> np.ndarray:
        """Read-only depth x width view of the counter table."""
        return self.counters.reshape(self._depth, self._width)

    # =========================================================================
    # Hashing
    # =========================================================================

    def get_hashes(self, key: Key) -> Sequence[int]:
        """Derive ``depth`` hashes for key with this sketch's strategy."""
        return self.get_hashes_alt(self._depth, key)

    def get_hashes_alt(self, num_hashes: int, key: Key) -> Sequence[int]:
        """Derive ``num_hashes`` hashes for key with this sketch's strategy."""
        self._require_initialized()
        return self._hash_strategy.derive(num_hashes, key)

    def _bins(self, hashes: Sequence[int], operation: str) -> np.ndarray:
        """Map the first ``depth`` hashes to flat bin indexes."""
        self._require_initialized()
        supplied = len(hashes)
        if supplied < self._depth:
            raise InsufficientHashesError(self._depth, supplied, operation)

        if isinstance(hashes, np.ndarray) and hashes.dtype == np.uint64:
            values = hashes[: self._depth]
        else:
            values = np.fromiter(
                (int(h) & MASK64 for h in itertools.islice(hashes, self._depth)),
                dtype=np.uint64,
                count=self._depth,
            )
        columns = (values % np.uint64(self._width)).astype(np.int64)
        return columns + self._row_offsets

    # =========================================================================
    # Updates
    # =========================================================================

    def add(self, key: Key, weight: int = 1) -> int:
        """Add ``weight`` occurrences of key.

        Returns:
            Minimum post-update counter across rows (the new estimate)
        """
        return self.add_by_hashes(self.get_hashes(key), weight)

    def add_by_hashes(self, hashes: Sequence[int], weight: int = 1) -> int:
        """Add ``weight`` using precomputed hashes.

        Raises:
            InsufficientHashesError: If fewer than ``depth`` hashes are given
            InvalidParameterError: If weight is negative
        """
        bins = self._bins(hashes, "addition")
        weight = _validate_weight(weight)
        before = self._counters[bins]
        after = saturating_add(before, weight)
        self._counters[bins] = after
        self._elements_added = clamp_int64(self._elements_added + weight)
        self._warn_if_saturated(before, after, "addition")
        return int(after.min())

    def add_batch(self, keys: Iterable[Key]) -> None:
        """Add many keys, hashing each distinct key once."""
        counts: dict[Key, int] = {}
        for key in keys:
            if isinstance(key, (bytearray, memoryview)):
                key = bytes(key)
            if key is not None:
                counts[key] = counts.get(key, 0) + 1

        for key, count in counts.items():
            self.add(key, count)

    def remove(self, key: Key, weight: int = 1) -> int:
        """Remove ``weight`` occurrences of key.

        Returns:
            Minimum post-update counter across rows
        """
        return self.remove_by_hashes(self.get_hashes(key), weight)

    def remove_by_hashes(self, hashes: Sequence[int], weight: int = 1) -> int:
        """Remove ``weight`` using precomputed hashes."""
        bins = self._bins(hashes, "removal")
        weight = _validate_weight(weight)
        before = self._counters[bins]
        after = saturating_sub(before, weight)
        self._counters[bins] = after
        self._elements_added = clamp_int64(self._elements_added - weight)
        self._warn_if_saturated(before, after, "removal")
        return int(after.min())

    def _warn_if_saturated(self, before: np.ndarray, after: np.ndarray, operation: str) -> None:
        if np.any(pinned_mask(after) & ~pinned_mask(before)):
            logger.warning(
                f"Counter saturated during {operation} "
                f"(sketch {self._width}x{self._depth}); estimates for the "
                f"affected bins are clamped"
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def check(self, key: Key) -> int:
        """Estimate the frequency of key as the minimum across rows."""
        return self.check_by_hashes(self.get_hashes(key))

    def check_by_hashes(self, hashes: Sequence[int]) -> int:
        bins = self._bins(hashes, "min lookup")
        return int(self._counters[bins].min())

    def check_mean(self, key: Key) -> int:
        """Estimate the frequency of key as the truncated mean across rows."""
        return self.check_mean_by_hashes(self.get_hashes(key))

    def check_mean_by_hashes(self, hashes: Sequence[int]) -> int:
        bins = self._bins(hashes, "mean lookup")
        total = int(self._counters[bins].astype(np.int64).sum())
        return _trunc_div(total, self._depth)

    def check_mean_min(self, key: Key) -> int:
        """Estimate the frequency of key with Count-Mean-Min.

        Each row's counter is reduced by the noise expected from the other
        keys sharing its bin, ``(elements_added - counter) / (width - 1)``,
        and the median of those residuals is returned.
        """
        return self.check_mean_min_by_hashes(self.get_hashes(key))

    def check_mean_min_by_hashes(self, hashes: Sequence[int]) -> int:
        bins = self._bins(hashes, "mean-min lookup")
        residuals = []
        for value in self._counters[bins].tolist():
            if self._width > 1:
                noise = _trunc_div(self._elements_added - value, self._width - 1)
            else:
                # A single column holds every key; there is no noise estimate.
                noise = 0
            residuals.append(value - noise)
        residuals.sort()

        n = len(residuals)
        if n % 2 == 0:
            estimate = _trunc_div(residuals[n // 2] + residuals[n // 2 - 1], 2)
        else:
            estimate = residuals[n // 2]
        return clamp_int32(estimate)

    # =========================================================================
    # Merging
    # =========================================================================

    def merge(self, *others: "CountMinSketch") -> "CountMinSketch":
        """Merge this sketch and ``others`` into a new sketch.

        Raises:
            IncompatibleSketchesError: If width, depth or hash strategy differ
        """
        from freqsketch.merge import merge

        return merge([self, *others])

    def merge_inplace(self, *others: "CountMinSketch") -> None:
        """Merge ``others`` into this sketch.

        Raises:
            IncompatibleSketchesError: If width, depth or hash strategy differ
        """
        from freqsketch.merge import merge_into

        merge_into(self, others)

    # =========================================================================
    # Serialization
    # =========================================================================

    def export(self, stream: BinaryIO, fmt: "SketchFormat | None" = None) -> int:
        """Write the sketch to a binary stream. Returns bytes written."""
        from freqsketch.serialization import export_sketch

        return export_sketch(self, stream, fmt)

    @classmethod
    def import_(
        cls,
        stream: BinaryIO,
        hash_strategy: HashStrategy | None = None,
        fmt: "SketchFormat | None" = None,
    ) -> "CountMinSketch":
        """Read a sketch previously written with :meth:`export`."""
        from freqsketch.serialization import import_sketch

        return import_sketch(stream, hash_strategy, fmt)

    def to_bytes(self) -> bytes:
        from freqsketch.serialization import to_bytes

        return to_bytes(self)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        hash_strategy: HashStrategy | None = None,
    ) -> "CountMinSketch":
        from freqsketch.serialization import from_bytes

        return from_bytes(data, hash_strategy)

    # =========================================================================
    # Introspection
    # =========================================================================

    def memory_bytes(self) -> int:
        """Return the size of the counter table in bytes."""
        return int(self._counters.nbytes)

    def metrics(self) -> SketchMetrics:
        """Get current metrics about the sketch."""
        self._require_initialized()
        non_zero = int(np.count_nonzero(self._counters))
        return SketchMetrics(
            elements_added=self._elements_added,
            memory_bytes=self.memory_bytes(),
            estimated_error=self._error_rate,
            fill_ratio=non_zero / self._counters.size,
        )

    def saturated_bins(self) -> int:
        """Number of counters pinned at either int32 bound."""
        return int(np.count_nonzero(pinned_mask(self._counters)))

    def __repr__(self) -> str:
        if self._destroyed:
            return "CountMinSketch(destroyed)"
        return (
            f"CountMinSketch(width={self._width}, depth={self._depth}, "
            f"elements_added={self._elements_added:,}, "
            f"error_rate={self._error_rate:.4f}, confidence={self._confidence:.4f})"
        )


