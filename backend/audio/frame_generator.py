"""
Payload chunking utilities (pure).

Purpose:
- Cut a complete audio payload into fixed-size transport chunks
  for the paced delivery scheduler and the device uplink.

Invariants:
- Chunks are contiguous, in order, and cover the payload exactly.
- Every chunk except possibly the last is exactly `chunk_bytes` long.
- The last chunk keeps the remainder (no padding, no dropping): the
  receiver's ring buffer tolerates a short tail.

Design:
- Pure functions only (no queues, no timing, no IO).
"""

from __future__ import annotations

from typing import Iterator


def chunk_count(num_bytes: int, chunk_bytes: int) -> int:
    """
    Number of chunks needed to carry `num_bytes` (ceil division).

    Raises:
        ValueError if chunk_bytes is not positive.
    """
    if chunk_bytes <= 0:
        raise ValueError("chunk_bytes must be > 0")
    if num_bytes <= 0:
        return 0
    return -(-num_bytes // chunk_bytes)


def iter_chunks(payload: bytes, chunk_bytes: int) -> Iterator[bytes]:
    """
    Yield consecutive `chunk_bytes` slices of `payload`; the final slice
    may be shorter.

    Raises:
        ValueError if chunk_bytes is not positive.
    """
    if chunk_bytes <= 0:
        raise ValueError("chunk_bytes must be > 0")

    view = memoryview(payload)
    for offset in range(0, len(payload), chunk_bytes):
        yield bytes(view[offset : offset + chunk_bytes])


def split_into_chunks(payload: bytes, chunk_bytes: int) -> list[bytes]:
    """List form of iter_chunks. Empty input returns []."""
    return list(iter_chunks(payload, chunk_bytes))
