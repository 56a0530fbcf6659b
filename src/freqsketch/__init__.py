"""Count-Min Sketch frequency estimation with fixed memory.

Key Components:
    - CountMinSketch: width x depth table of saturating int32 counters
    - Hash strategies: seeded FNV-1a (default) and xxh64
    - Merging: combine compatible sketches built over stream partitions
    - Serialization: compact binary export/import

Usage:
    from freqsketch import CountMinSketch, merge

    cms = CountMinSketch(width=10000, depth=7)
    for key in stream:
        cms.add(key)
    cms.check("popular-key")

    # Sized from accuracy targets
    cms = CountMinSketch.init_optimal(error_rate=0.001, confidence=0.999)

    # Combine shards
    total = merge([shard_a, shard_b])

    # Persist
    with open("sketch.cms", "wb") as f:
        cms.export(f)
"""

import logging

from freqsketch.arithmetic import INT32_MAX, INT32_MIN
from freqsketch.countmin import CountMinSketch
from freqsketch.errors import (
    AllocationFailureError,
    CorruptDataError,
    ErrorCategory,
    IncompatibleSketchesError,
    InsufficientHashesError,
    InvalidParameterError,
    SketchError,
    SketchIOError,
    SketchStateError,
)
from freqsketch.factory import SketchFactory, SketchPreset, create_sketch
from freqsketch.hashing import (
    DEFAULT_HASH_STRATEGY,
    FNV1aHashStrategy,
    XXHashStrategy,
)
from freqsketch.merge import merge, merge_into, validate_merge
from freqsketch.protocols import (
    CountMinSketchConfig,
    FrequencyEstimator,
    HashStrategy,
    MergeableSketch,
    SketchMetrics,
)
from freqsketch.serialization import (
    SketchFormat,
    export_sketch,
    from_bytes,
    import_sketch,
    to_bytes,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.2.0"

__all__ = [
    # Core
    "CountMinSketch",
    "INT32_MAX",
    "INT32_MIN",
    # Hashing
    "HashStrategy",
    "FNV1aHashStrategy",
    "XXHashStrategy",
    "DEFAULT_HASH_STRATEGY",
    # Merge
    "merge",
    "merge_into",
    "validate_merge",
    # Serialization
    "SketchFormat",
    "export_sketch",
    "import_sketch",
    "to_bytes",
    "from_bytes",
    # Configuration
    "CountMinSketchConfig",
    "SketchMetrics",
    "FrequencyEstimator",
    "MergeableSketch",
    # Factory
    "SketchFactory",
    "SketchPreset",
    "create_sketch",
    # Errors
    "SketchError",
    "ErrorCategory",
    "InvalidParameterError",
    "AllocationFailureError",
    "InsufficientHashesError",
    "IncompatibleSketchesError",
    "CorruptDataError",
    "SketchIOError",
    "SketchStateError",
]
