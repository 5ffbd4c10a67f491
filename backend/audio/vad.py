"""
A minimal, amplitude-based voice activity classifier.

Operates on short, fixed-size PCM16 frames and classifies each one as
speech or silence by comparing its mean absolute amplitude to a fixed
threshold. Phase logic (waiting for speech, silence timeouts) lives in
device.recorder; this module only answers "is this frame loud enough".
"""
from __future__ import annotations

from dataclasses import dataclass

from audio.pcm import mean_abs_amplitude


@dataclass(frozen=True)
class GateDecision:
    """Result of classifying one frame."""
    amplitude: float
    is_speech: bool


class AmplitudeGate:
    """
    Mean-absolute-amplitude speech/silence classifier.

    A frame counts as speech when its mean |sample| (int16 units) is at or
    above `threshold`. Stateless apart from the last observed amplitude,
    which is kept for logging.
    """

    def __init__(self, threshold: float) -> None:
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        self._threshold = threshold
        self._last_amplitude = 0.0

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def last_amplitude(self) -> float:
        return self._last_amplitude

    def observe(self, pcm_bytes: bytes) -> GateDecision:
        """
        Classify a single PCM16 frame.

        Args:
            pcm_bytes:
                Raw little-endian PCM16 mono samples for one analysis frame.

        Returns:
            GateDecision with the frame's amplitude and whether it is speech.
        """
        amplitude = mean_abs_amplitude(pcm_bytes)
        self._last_amplitude = amplitude
        return GateDecision(amplitude=amplitude, is_speech=amplitude >= self._threshold)

    def reset(self) -> None:
        """Forget the last observed amplitude."""
        self._last_amplitude = 0.0
