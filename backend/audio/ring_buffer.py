"""
Fixed-capacity circular byte buffer between the network receiver
(producer) and the playback thread (consumer).

Contract:
- write() never blocks. It accepts min(len(data), capacity - fill) bytes
  and silently truncates the rest. Unread data is never overwritten;
  truncated bytes are counted in `dropped_bytes`, not reported as errors.
- read() never blocks and returns up to max_bytes.
- read_exact() and wait_for_fill() block until enough data is present
  or the producer has called finish().
- Accesses spanning the end of the backing array are split into two copies.

Concurrency:
- Exactly one producer thread and one consumer thread.
- The producer only advances write_index and increases fill; the consumer
  only advances read_index and decreases fill.
- Byte copies happen outside the lock on regions the other side cannot
  touch; indices are published under the lock after the copy completes.
- Waiters sleep on a Condition signaled by every write and by finish().
"""

from __future__ import annotations

import threading


class RingBuffer:
    """Single-producer / single-consumer byte ring with an end-of-stream flag."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")

        self._capacity = capacity
        self._buf = bytearray(capacity)
        self._write_index = 0
        self._read_index = 0
        self._fill = 0
        self._finished = False
        self._dropped_bytes = 0
        self._cond = threading.Condition()

    # -------------------------
    # Introspection
    # -------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def fill(self) -> int:
        """Bytes currently buffered and unread."""
        with self._cond:
            return self._fill

    @property
    def free_space(self) -> int:
        with self._cond:
            return self._capacity - self._fill

    @property
    def finished(self) -> bool:
        """True once the producer has declared end-of-stream."""
        with self._cond:
            return self._finished

    @property
    def drained(self) -> bool:
        """True when finished and every byte has been consumed."""
        with self._cond:
            return self._finished and self._fill == 0

    @property
    def dropped_bytes(self) -> int:
        """Total bytes truncated by write() because the ring was full."""
        with self._cond:
            return self._dropped_bytes

    @property
    def write_index(self) -> int:
        with self._cond:
            return self._write_index

    @property
    def read_index(self) -> int:
        with self._cond:
            return self._read_index

    def snapshot(self) -> dict[str, int | bool]:
        """Lightweight snapshot for logging."""
        with self._cond:
            return {
                "capacity": self._capacity,
                "fill": self._fill,
                "write_index": self._write_index,
                "read_index": self._read_index,
                "finished": self._finished,
                "dropped_bytes": self._dropped_bytes,
            }

    # -------------------------
    # Producer side
    # -------------------------

    def write(self, data: bytes) -> int:
        """
        Append as much of `data` as fits.

        Returns:
            Number of bytes accepted (0..len(data)).
        """
        if not data:
            return 0

        with self._cond:
            start = self._write_index
            free = self._capacity - self._fill

        # fill only shrinks concurrently, so `free` bytes are safe to copy
        accepted = min(len(data), free)
        if accepted:
            first = min(accepted, self._capacity - start)
            self._buf[start : start + first] = data[:first]
            if accepted > first:
                self._buf[0 : accepted - first] = data[first:accepted]

        with self._cond:
            self._write_index = (start + accepted) % self._capacity
            self._fill += accepted
            self._dropped_bytes += len(data) - accepted
            self._cond.notify_all()

        return accepted

    def finish(self) -> None:
        """Declare that no more data will ever be written."""
        with self._cond:
            self._finished = True
            self._cond.notify_all()

    # -------------------------
    # Consumer side
    # -------------------------

    def read(self, max_bytes: int) -> bytes:
        """
        Non-blocking read of up to `max_bytes`.

        Returns b"" when the ring is empty.
        """
        if max_bytes <= 0:
            return b""

        with self._cond:
            start = self._read_index
            count = min(max_bytes, self._fill)

        if count == 0:
            return b""

        first = min(count, self._capacity - start)
        out = bytes(self._buf[start : start + first])
        if count > first:
            out += bytes(self._buf[0 : count - first])

        with self._cond:
            self._read_index = (start + count) % self._capacity
            self._fill -= count
            self._cond.notify_all()

        return out

    def wait_for_fill(self, threshold: int, timeout: float | None = None) -> bool:
        """
        Block until fill >= threshold or the stream is finished.

        Returns:
            True if the condition was met, False on timeout.
        """
        target = min(threshold, self._capacity)
        with self._cond:
            return self._cond.wait_for(
                lambda: self._fill >= target or self._finished,
                timeout=timeout,
            )

    def read_exact(self, n: int, timeout: float | None = None) -> bytes:
        """
        Blocking read of exactly `n` bytes.

        Returns fewer than `n` bytes only when the stream finished first
        (the remaining tail) or the timeout elapsed (whatever is buffered).
        """
        if n <= 0:
            return b""
        if n > self._capacity:
            raise ValueError("cannot wait for more bytes than the ring holds")

        self.wait_for_fill(n, timeout=timeout)
        return self.read(n)

    def skip(self, n: int, timeout: float | None = None) -> int:
        """
        Discard `n` bytes one at a time, waiting whenever the ring is empty.

        Lets a header arrive concurrently with the consumer. Stops early if
        the stream finishes (or the per-byte timeout elapses) while empty.

        Returns:
            Number of bytes actually discarded.
        """
        skipped = 0
        while skipped < n:
            if not self.wait_for_fill(1, timeout=timeout):
                break
            if not self.read(1):
                # finished and empty
                break
            skipped += 1
        return skipped

    # -------------------------
    # Lifecycle
    # -------------------------

    def reset(self) -> None:
        """
        Clear all data and the finished flag (new reply stream).

        Must not race with an active producer or consumer.
        """
        with self._cond:
            self._write_index = 0
            self._read_index = 0
            self._fill = 0
            self._finished = False
            self._dropped_bytes = 0
            self._cond.notify_all()

    def __len__(self) -> int:
        return self.fill
