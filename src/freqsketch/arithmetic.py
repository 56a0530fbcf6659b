"""Saturating counter arithmetic.

Counters are signed 32-bit. Arithmetic never wraps: results are clamped
to ``[INT32_MIN, INT32_MAX]``, and a counter that has reached either bound
stays pinned there. A pinned counter has lost its true value, so further
updates cannot make it meaningful again.
"""

from __future__ import annotations

import numpy as np

INT32_MAX = int(np.iinfo(np.int32).max)
INT32_MIN = int(np.iinfo(np.int32).min)
INT64_MAX = int(np.iinfo(np.int64).max)
INT64_MIN = int(np.iinfo(np.int64).min)

# Any step wider than the full int32 span saturates every counter anyway;
# capping it keeps the int64 intermediate from overflowing.
_MAX_STEP = 1 << 33


def clamp_int32(value: int) -> int:
    if value >= INT32_MAX:
        return INT32_MAX
    if value <= INT32_MIN:
        return INT32_MIN
    return value


def clamp_int64(value: int) -> int:
    if value >= INT64_MAX:
        return INT64_MAX
    if value <= INT64_MIN:
        return INT64_MIN
    return value


def pinned_mask(values: np.ndarray) -> np.ndarray:
    """Boolean mask of counters sitting at either int32 bound."""
    return (values == INT32_MAX) | (values == INT32_MIN)


def saturating_add(values: np.ndarray, amount: int) -> np.ndarray:
    """Add ``amount`` to each int32 counter, clamping at the int32 bounds.

    Args:
        values: int32 counter values (not modified)
        amount: Signed step; negative values subtract

    Returns:
        New int32 array with the updated counters.
    """
    step = max(-_MAX_STEP, min(_MAX_STEP, amount))
    wide = values.astype(np.int64)
    updated = np.clip(wide + step, INT32_MIN, INT32_MAX)
    return np.where(pinned_mask(values), wide, updated).astype(np.int32)


def saturating_sub(values: np.ndarray, amount: int) -> np.ndarray:
    """Subtract ``amount`` from each int32 counter, clamping at the int32 bounds."""
    return saturating_add(values, -amount)


def saturating_add_array(counters: np.ndarray, other: np.ndarray) -> int:
    """Element-wise saturating add of ``other`` into ``counters``, in place.

    Returns:
        Number of bins newly pinned at a bound by this addition.
    """
    pinned = pinned_mask(counters)
    wide = counters.astype(np.int64) + other.astype(np.int64)
    np.clip(wide, INT32_MIN, INT32_MAX, out=wide)
    newly_pinned = ~pinned & pinned_mask(wide)
    np.copyto(counters, wide.astype(np.int32), where=~pinned)
    return int(np.count_nonzero(newly_pinned))
