"""Binary export and import of Count-Min Sketches.

Layout (all fields in the format's byte order, little-endian by default):

    +--------------------------------------------+
    | counters: width * depth x int32, row-major |
    +--------------------------------------------+
    | width: uint32                              |
    | depth: uint32                              |
    | elements_added: int64                      |
    +--------------------------------------------+

The trailer sits at a fixed offset from the end of the stream, so an
importer seeks there first, learns the dimensions, then rewinds and reads
exactly ``width * depth`` counters. error_rate and confidence are not
stored; they are recomputed from the dimensions on import. The hash
strategy is not stored either and must be supplied by the importer.
"""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO

import numpy as np

from freqsketch.countmin import CountMinSketch
from freqsketch.errors import (
    CorruptDataError,
    InvalidParameterError,
    SketchError,
    SketchIOError,
)
from freqsketch.protocols import HashStrategy

logger = logging.getLogger(__name__)

UINT32_MAX = (1 << 32) - 1


@dataclass(frozen=True)
class SketchFormat:
    """Byte-level encoding of the export format.

    Attributes:
        byte_order: struct/numpy byte-order prefix; "<" (little-endian,
            default), ">" (big-endian) or "=" (platform native)
    """

    byte_order: str = "<"

    def __post_init__(self) -> None:
        if self.byte_order not in ("<", ">", "="):
            raise InvalidParameterError(
                f"byte_order must be '<', '>' or '=', got {self.byte_order!r}"
            )

    @property
    def counter_dtype(self) -> np.dtype:
        return np.dtype(f"{self.byte_order}i4")

    @property
    def trailer(self) -> struct.Struct:
        return struct.Struct(f"{self.byte_order}IIq")

    @property
    def trailer_size(self) -> int:
        return self.trailer.size


DEFAULT_FORMAT = SketchFormat()


def export_sketch(
    sketch: CountMinSketch,
    stream: BinaryIO,
    fmt: SketchFormat | None = None,
) -> int:
    """Write ``sketch`` to a binary stream.

    Args:
        sketch: Sketch to export
        stream: Writable binary stream
        fmt: Encoding; defaults to little-endian

    Returns:
        Number of bytes written

    Raises:
        SketchIOError: If the stream rejects the write
        CorruptDataError: If the dimensions do not fit the 32-bit trailer
    """
    fmt = fmt or DEFAULT_FORMAT
    sketch._require_initialized()
    if sketch.width > UINT32_MAX or sketch.depth > UINT32_MAX:
        raise CorruptDataError(
            "Sketch dimensions exceed the 32-bit trailer fields",
            context={"width": sketch.width, "depth": sketch.depth},
        )

    payload = sketch.counters.astype(fmt.counter_dtype, copy=False).tobytes()
    trailer = fmt.trailer.pack(sketch.width, sketch.depth, sketch.elements_added)
    try:
        stream.write(payload)
        stream.write(trailer)
    except (OSError, ValueError) as e:
        raise SketchIOError(f"Failed to write sketch: {e}", cause=e) from e

    written = len(payload) + len(trailer)
    logger.debug(
        f"Exported {sketch.width}x{sketch.depth} sketch ({written} bytes)"
    )
    return written


def import_sketch(
    stream: BinaryIO,
    hash_strategy: HashStrategy | None = None,
    fmt: SketchFormat | None = None,
) -> CountMinSketch:
    """Read a sketch written by :func:`export_sketch`.

    Args:
        stream: Readable, seekable binary stream
        hash_strategy: Strategy to attach; None uses the shared default
        fmt: Encoding the stream was written with

    Returns:
        New sketch with the stored dimensions, counters and elements_added

    Raises:
        CorruptDataError: If the trailer is missing or invalid, or fewer
            than width * depth counters can be read
        SketchIOError: If the stream cannot be seeked or read
    """
    fmt = fmt or DEFAULT_FORMAT
    try:
        end = stream.seek(0, io.SEEK_END)
        if end < fmt.trailer_size:
            raise CorruptDataError(
                f"Stream too short for sketch trailer ({end} bytes)",
                context={"size": end, "trailer_size": fmt.trailer_size},
            )
        stream.seek(-fmt.trailer_size, io.SEEK_END)
        trailer = stream.read(fmt.trailer_size)
        stream.seek(0)
        width, depth, elements_added = fmt.trailer.unpack(trailer)

        if width < 1 or depth < 1:
            raise CorruptDataError(
                "Sketch trailer has zero dimensions",
                context={"width": width, "depth": depth},
            )

        length = width * depth
        expected = length * fmt.counter_dtype.itemsize
        payload = stream.read(min(expected, end - fmt.trailer_size))
    except struct.error as e:
        raise CorruptDataError(f"Malformed sketch trailer: {e}", cause=e) from e
    except SketchError:
        raise
    except (OSError, ValueError) as e:
        raise SketchIOError(f"Failed to read sketch: {e}", cause=e) from e

    if len(payload) < expected:
        raise CorruptDataError(
            f"Read {len(payload) // fmt.counter_dtype.itemsize} counters, "
            f"expected {length}",
            context={"width": width, "depth": depth, "bytes_read": len(payload)},
        )

    counters = np.frombuffer(payload, dtype=fmt.counter_dtype, count=length)
    sketch = CountMinSketch._from_parts(
        width=width,
        depth=depth,
        error_rate=2.0 / width,
        confidence=1.0 - 1.0 / (2.0**depth),
        hash_strategy=hash_strategy,
        elements_added=elements_added,
        counters=counters,
    )
    logger.debug(f"Imported {width}x{depth} sketch ({expected + fmt.trailer_size} bytes)")
    return sketch


def to_bytes(sketch: CountMinSketch, fmt: SketchFormat | None = None) -> bytes:
    """Export ``sketch`` to an in-memory bytes object."""
    buffer = io.BytesIO()
    export_sketch(sketch, buffer, fmt)
    return buffer.getvalue()


def from_bytes(
    data: bytes,
    hash_strategy: HashStrategy | None = None,
    fmt: SketchFormat | None = None,
) -> CountMinSketch:
    """Import a sketch from bytes produced by :func:`to_bytes`."""
    return import_sketch(io.BytesIO(data), hash_strategy, fmt)
