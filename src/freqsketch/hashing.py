"""Hash strategies for deriving one 64-bit hash per sketch row.

A strategy turns a key into ``depth`` related 64-bit values. The default
strategy is seeded FNV-1a: the FNV offset basis is shifted by ``31 * i``
for row ``i`` and the key bytes are folded with the usual xor-multiply
recurrence. The rows are related rather than pairwise independent; that
is the price of computing them from one cheap base algorithm.

Strategies are part of sketch identity. Sketches built without an
explicit strategy share ``DEFAULT_HASH_STRATEGY`` and are therefore
merge-compatible with each other.

Example:
    strategy = FNV1aHashStrategy()
    hashes = strategy.derive(4, "example.com")

    # Faster, better-mixed rows
    sketch = CountMinSketch(2000, 5, hash_strategy=XXHashStrategy(seed=7))
"""

from __future__ import annotations

import numpy as np
import xxhash

from freqsketch.errors import InvalidParameterError
from freqsketch.protocols import Key

FNV_OFFSET_BASIS = 14695981039346656037
FNV_PRIME = 1099511628211
SEED_STEP = 31

MASK64 = (1 << 64) - 1


def key_to_bytes(key: Key) -> bytes:
    """Encode a key the way every strategy sees it (UTF-8 for ``str``)."""
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, (bytes, bytearray, memoryview)):
        return bytes(key)
    raise InvalidParameterError(
        f"keys must be str or bytes, got {type(key).__name__}",
        context={"key_type": type(key).__name__},
    )


class FNV1aHashStrategy:
    """Seeded 64-bit FNV-1a, all rows folded at once.

    Row ``i`` starts from the offset basis plus ``31 * i`` and folds the
    key bytes with xor-then-multiply. All rows walk the key bytes together
    in a ``uint64`` vector with one lane per row. Unsigned numpy
    arithmetic wraps modulo 2^64, which is exactly the FNV recurrence.
    """

    def derive(self, num_hashes: int, key: Key) -> np.ndarray:
        data = key_to_bytes(key)
        seeds = np.arange(num_hashes, dtype=np.uint64)
        h = np.uint64(FNV_OFFSET_BASIS) + seeds * np.uint64(SEED_STEP)
        prime = np.uint64(FNV_PRIME)
        for byte in data:
            h ^= np.uint64(byte)
            h *= prime
        return h

    def __repr__(self) -> str:
        return "FNV1aHashStrategy()"


class XXHashStrategy:
    """xxh64 per row, row ``i`` seeded with ``seed + i``.

    Rows are far closer to independent than the FNV-1a default, at the
    cost of one full hash per row.
    """

    def __init__(self, seed: int = 0) -> None:
        if seed < 0:
            raise InvalidParameterError(
                f"seed must be non-negative, got {seed}", context={"seed": seed}
            )
        self.seed = seed

    def derive(self, num_hashes: int, key: Key) -> np.ndarray:
        data = key_to_bytes(key)
        return np.fromiter(
            (
                xxhash.xxh64_intdigest(data, seed=(self.seed + i) & MASK64)
                for i in range(num_hashes)
            ),
            dtype=np.uint64,
            count=num_hashes,
        )

    def __repr__(self) -> str:
        return f"XXHashStrategy(seed={self.seed})"


DEFAULT_HASH_STRATEGY = FNV1aHashStrategy()
