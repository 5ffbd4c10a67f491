"""
Delivery plan for one synthesized reply.

Derived once from the complete payload and then consumed chunk by chunk:

    chunk_interval_ms = round(1000 * chunk_bytes / (sample_rate * bytes_per_sample * channels))
    total_chunks      = ceil(total_bytes / chunk_bytes)
    burst_chunks      = max(1, floor(total_chunks * burst_fraction)), capped at total_chunks

The format comes from the payload's WAV header when present; a missing or
short header falls back to the configured default format. The payload is
delivered whole, header included, because the device discards exactly
44 bytes before its first sample.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from audio.frame_generator import chunk_count
from audio.wav import DEFAULT_WAV_FORMAT, WavFormat, parse_wav_header_or_default
from spec import DELIVERY_MIN_BURST_CHUNKS


def compute_chunk_interval_ms(chunk_bytes: int, fmt: WavFormat) -> int:
    """Real-time playback duration of one chunk, rounded to whole ms."""
    bytes_per_second = fmt.sample_rate_hz * fmt.bytes_per_sample * fmt.channels
    if bytes_per_second <= 0:
        raise ValueError("format has a zero byte rate")
    return round(1000 * chunk_bytes / bytes_per_second)


def compute_burst_chunks(total_chunks: int, burst_fraction: float) -> int:
    """Chunks sent back-to-back before pacing starts."""
    if total_chunks <= 0:
        return 0
    burst = max(DELIVERY_MIN_BURST_CHUNKS, math.floor(total_chunks * burst_fraction))
    return min(burst, total_chunks)


@dataclass
class DeliveryPlan:
    """Chunking and pacing parameters plus a cursor over the payload."""

    payload: bytes = field(repr=False)
    chunk_bytes: int
    fmt: WavFormat
    burst_chunks: int
    header_parsed: bool = False
    cursor: int = 0

    @classmethod
    def from_payload(
        cls,
        payload: bytes,
        *,
        chunk_bytes: int,
        burst_fraction: float,
        fmt: WavFormat | None = None,
        default_fmt: WavFormat = DEFAULT_WAV_FORMAT,
    ) -> DeliveryPlan:
        """
        Build a plan for `payload`.

        Args:
            fmt: explicit format; when None it is parsed from the header,
                falling back to `default_fmt`.
        """
        if chunk_bytes <= 0:
            raise ValueError("chunk_bytes must be > 0")
        if not 0.0 < burst_fraction <= 1.0:
            raise ValueError("burst_fraction must be in (0, 1]")

        parsed = fmt is not None
        if fmt is None:
            fmt, parsed = parse_wav_header_or_default(payload, default_fmt)

        total = chunk_count(len(payload), chunk_bytes)
        return cls(
            payload=payload,
            chunk_bytes=chunk_bytes,
            fmt=fmt,
            burst_chunks=compute_burst_chunks(total, burst_fraction),
            header_parsed=parsed,
        )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def total_bytes(self) -> int:
        return len(self.payload)

    @property
    def total_chunks(self) -> int:
        return chunk_count(len(self.payload), self.chunk_bytes)

    @property
    def chunk_interval_ms(self) -> int:
        return compute_chunk_interval_ms(self.chunk_bytes, self.fmt)

    @property
    def chunks_sent(self) -> int:
        return chunk_count(self.cursor, self.chunk_bytes)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.payload)

    @property
    def in_burst(self) -> bool:
        """True while the next chunk still belongs to the burst phase."""
        return self.chunks_sent < self.burst_chunks

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def next_chunk(self) -> bytes:
        """Return the next chunk and advance the cursor; b"" when exhausted."""
        if self.exhausted:
            return b""
        end = min(self.cursor + self.chunk_bytes, len(self.payload))
        chunk = self.payload[self.cursor : end]
        self.cursor = end
        return chunk

    def summary(self) -> dict[str, int | bool]:
        """Log-friendly view of the plan."""
        return {
            "total_bytes": self.total_bytes,
            "chunk_bytes": self.chunk_bytes,
            "total_chunks": self.total_chunks,
            "burst_chunks": self.burst_chunks,
            "chunk_interval_ms": self.chunk_interval_ms,
            "sample_rate_hz": self.fmt.sample_rate_hz,
            "bits_per_sample": self.fmt.bits_per_sample,
            "channels": self.fmt.channels,
            "header_parsed": self.header_parsed,
        }
