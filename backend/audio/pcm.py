"""PCM16 conversion and level utilities."""
import numpy as np

from spec import PCM16_MAX, PCM16_MIN


def pcm16le_to_int16(pcm_bytes: bytes) -> np.ndarray:
    """
    View PCM16 little-endian mono bytes as an int16 array.

    A trailing odd byte (truncated sample) is dropped.
    """
    if len(pcm_bytes) % 2 != 0:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]
    return np.frombuffer(pcm_bytes, dtype="<i2")


def mean_abs_amplitude(pcm_bytes: bytes) -> float:
    """
    Mean absolute sample value of a PCM16 block, in int16 units.

    Empty input returns 0.0.
    """
    samples = pcm16le_to_int16(pcm_bytes)
    if samples.size == 0:
        return 0.0
    # widen first: abs(-32768) overflows int16
    return float(np.mean(np.abs(samples.astype(np.int32))))


def apply_gain(pcm_bytes: bytes, gain: float) -> bytes:
    """
    Scale PCM16 samples by a linear gain, saturating to the int16 range.

    A gain of exactly 1.0 returns the input unchanged (trailing odd byte
    included), so the common no-gain path costs nothing.
    """
    if gain == 1.0:
        return pcm_bytes

    samples = pcm16le_to_int16(pcm_bytes).astype(np.int32)
    scaled = np.rint(samples * gain)
    clipped = np.clip(scaled, PCM16_MIN, PCM16_MAX).astype("<i2")
    return clipped.tobytes()
