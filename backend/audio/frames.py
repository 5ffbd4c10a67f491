"""
Audio frame primitives.

Pure data containers only.
No queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass

from spec import AUDIO_SAMPLE_RATE_HZ, AUDIO_SAMPLE_WIDTH_BYTES


@dataclass(frozen=True)
class AudioFrame:
    """
    One captured or received block of PCM16 mono samples.

    pcm_bytes:
        Raw PCM16 little-endian bytes. Any whole number of samples.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was captured
        or received. Used for observability only (not control logic).

    sample_rate_hz:
        Sample rate the bytes were captured at.
    """
    pcm_bytes: bytes
    ts_ms: int = 0
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ

    @property
    def num_samples(self) -> int:
        """Number of whole samples in the frame."""
        return len(self.pcm_bytes) // AUDIO_SAMPLE_WIDTH_BYTES

    @property
    def duration_ms(self) -> float:
        """Real-time duration of the frame."""
        return 1000.0 * self.num_samples / self.sample_rate_hz
