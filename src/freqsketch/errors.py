"""Structured error handling for Count-Min Sketch operations.

This module provides a typed exception hierarchy with:
- Error categories for grouping failures
- Context preservation (dimensions, counts, offending values)
- Dictionary export for logging and reporting

Every exception also derives from the closest builtin so callers that
only know about ``ValueError``/``MemoryError``/``OSError`` still catch it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Categories of sketch errors."""

    VALIDATION = "validation"   # Invalid input/configuration
    MEMORY = "memory"           # Counter table allocation
    MERGE = "merge"             # Incompatible sketches
    IO = "io"                   # Serialization read/write
    STATE = "state"             # Operation on a destroyed sketch


class SketchError(Exception):
    """Base exception for all sketch errors."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "cause": str(self.cause) if self.cause else None,
            "context": self.context,
        }

    def __str__(self) -> str:
        parts = [f"[{self.category.value.upper()}] {self.message}"]
        if self.context:
            parts.append(
                ", ".join(f"{key}={value}" for key, value in self.context.items())
            )
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)


class InvalidParameterError(SketchError, ValueError):
    """Bad width/depth/error_rate/confidence/weight/key."""

    category = ErrorCategory.VALIDATION


class AllocationFailureError(SketchError, MemoryError):
    """The counter table could not be allocated."""

    category = ErrorCategory.MEMORY


class InsufficientHashesError(SketchError, ValueError):
    """A caller-supplied hash sequence is shorter than the sketch depth."""

    category = ErrorCategory.VALIDATION

    def __init__(self, required: int, supplied: int, operation: str = "lookup"):
        super().__init__(
            f"Insufficient hashes to complete the {operation}: "
            f"need {required}, got {supplied}",
            context={"required": required, "supplied": supplied},
        )
        self.required = required
        self.supplied = supplied


class IncompatibleSketchesError(SketchError, ValueError):
    """Sketches differ in width, depth or hash strategy."""

    category = ErrorCategory.MERGE


class CorruptDataError(SketchError, ValueError):
    """Serialized data is truncated or malformed."""

    category = ErrorCategory.IO


class SketchIOError(SketchError, OSError):
    """The underlying stream could not be read, written or seeked."""

    category = ErrorCategory.IO


class SketchStateError(SketchError, RuntimeError):
    """The sketch has been destroyed and no longer owns a counter table."""

    category = ErrorCategory.STATE
