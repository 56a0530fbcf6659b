"""Test doubles for hash strategies and binary streams."""

from tests.mocks.hash_mocks import FailingStream, FixedHashStrategy

__all__ = [
    "FailingStream",
    "FixedHashStrategy",
]
