"""Merging Count-Min Sketches.

Sketches built over different partitions of a stream can be combined by
summing their tables bin by bin, provided they agree on width, depth and
hash strategy (the *same* strategy instance). Validation runs over every
sketch before anything is written, so a rejected merge leaves all inputs
untouched.

Example:
    total = merge([shard_a, shard_b, shard_c])

    # Or accumulate into an existing sketch
    merge_into(total, [shard_d])
"""

from __future__ import annotations

import logging
from typing import Sequence

from freqsketch.arithmetic import clamp_int64, saturating_add_array
from freqsketch.countmin import CountMinSketch
from freqsketch.errors import (
    IncompatibleSketchesError,
    InvalidParameterError,
    SketchStateError,
)

logger = logging.getLogger(__name__)


def _check_pair(reference: CountMinSketch, other: CountMinSketch, position: int) -> None:
    if other.is_destroyed:
        raise SketchStateError(
            f"Cannot merge destroyed sketch at position {position}",
            context={"position": position},
        )

    mismatches = []
    if reference.depth != other.depth:
        mismatches.append(f"depth=({reference.depth}/{other.depth})")
    if reference.width != other.width:
        mismatches.append(f"width=({reference.width}/{other.width})")
    if reference.hash_strategy is not other.hash_strategy:
        mismatches.append(
            f"hash=({reference.hash_strategy!r}/{other.hash_strategy!r})"
        )

    if mismatches:
        message = (
            "Cannot merge sketches due to incompatible definitions "
            f"({' '.join(mismatches)})"
        )
        logger.warning(message)
        raise IncompatibleSketchesError(
            message,
            context={
                "position": position,
                "width": (reference.width, other.width),
                "depth": (reference.depth, other.depth),
                "same_hash_strategy": reference.hash_strategy is other.hash_strategy,
            },
        )


def validate_merge(
    sources: Sequence[CountMinSketch],
    target: CountMinSketch | None = None,
) -> None:
    """Check every sketch against the reference before any mutation.

    The reference is ``target`` when given, otherwise the first source.

    Raises:
        InvalidParameterError: If there is nothing to merge
        IncompatibleSketchesError: If width, depth or hash strategy differ
        SketchStateError: If any sketch has been destroyed
    """
    if target is None:
        if not sources:
            raise InvalidParameterError("merge requires at least one sketch")
        reference = sources[0]
        _check_pair(reference, reference, 0)
        rest = enumerate(sources[1:], start=1)
    else:
        reference = target
        if reference.is_destroyed:
            raise SketchStateError("Cannot merge into a destroyed sketch")
        rest = enumerate(sources)

    for position, sketch in rest:
        _check_pair(reference, sketch, position)


def _combine(target: CountMinSketch, sources: Sequence[CountMinSketch]) -> None:
    counters = target._counters
    elements_added = target.elements_added
    newly_pinned = 0
    for sketch in sources:
        elements_added = clamp_int64(elements_added + sketch.elements_added)
        newly_pinned += saturating_add_array(counters, sketch._counters)
    target._elements_added = elements_added

    if newly_pinned:
        logger.warning(f"Merge saturated {newly_pinned} counters")


def merge(sources: Sequence[CountMinSketch]) -> CountMinSketch:
    """Merge ``sources`` into a new sketch.

    The new sketch copies width, depth, hash strategy, error_rate and
    confidence from the first source.

    Raises:
        InvalidParameterError: If ``sources`` is empty
        IncompatibleSketchesError: If the sketches differ in width, depth
            or hash strategy
    """
    sources = list(sources)
    validate_merge(sources)

    base = sources[0]
    merged = CountMinSketch._from_parts(
        width=base.width,
        depth=base.depth,
        error_rate=base.error_rate,
        confidence=base.confidence,
        hash_strategy=base.hash_strategy,
    )
    _combine(merged, sources)
    logger.debug(f"Merged {len(sources)} sketches ({base.width}x{base.depth})")
    return merged


def merge_into(
    target: CountMinSketch,
    sources: Sequence[CountMinSketch],
) -> CountMinSketch:
    """Merge ``sources`` into ``target`` and return it.

    Raises:
        IncompatibleSketchesError: If any source differs from the target in
            width, depth or hash strategy; the target is left unchanged
    """
    sources = list(sources)
    validate_merge(sources, target=target)
    _combine(target, sources)
    logger.debug(
        f"Merged {len(sources)} sketches into {target.width}x{target.depth} target"
    )
    return target
