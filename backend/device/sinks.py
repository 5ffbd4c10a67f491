"""
Audio hardware boundary for the device side.

Playback writes PCM16 chunks into an AudioSink; the recorder pulls
fixed-size frames from a MicrophoneSource. Both are narrow protocols so
the scheduling logic can be tested with in-memory fakes.

Concrete implementations:
- SoundDeviceSink / SoundDeviceMicrophone: PortAudio via `sounddevice`
  (blocking raw int16 streams).
- WaveFileSink: writes played audio to a .wav file (headless runs).
"""

from __future__ import annotations

import wave
from pathlib import Path
from typing import Any, Protocol

from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, AUDIO_SAMPLE_WIDTH_BYTES


class AudioSink(Protocol):
    """Blocking PCM16 output device."""

    def write(self, pcm_bytes: bytes) -> None:
        """Queue one chunk for playback. May block until accepted."""

    def close(self) -> None:
        """Release the output device. Must be idempotent."""


class MicrophoneSource(Protocol):
    """Blocking PCM16 input device."""

    def read_frame(self, num_samples: int) -> bytes:
        """Return exactly `num_samples` samples of PCM16 (blocking)."""

    def close(self) -> None:
        """Release the input device. Must be idempotent."""


class SoundDeviceSink:
    """Speaker output through a raw int16 PortAudio stream."""

    def __init__(
        self,
        *,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
        device: int | str | None = None,
    ) -> None:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        self._stream: Any = sd.RawOutputStream(
            samplerate=sample_rate_hz,
            channels=AUDIO_CHANNELS,
            dtype="int16",
            device=device,
        )
        self._stream.start()
        self._closed = False

    def write(self, pcm_bytes: bytes) -> None:
        self._stream.write(pcm_bytes)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.stop()
        self._stream.close()


class SoundDeviceMicrophone:
    """Microphone capture through a raw int16 PortAudio stream."""

    def __init__(
        self,
        *,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
        device: int | str | None = None,
    ) -> None:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        self._stream: Any = sd.RawInputStream(
            samplerate=sample_rate_hz,
            channels=AUDIO_CHANNELS,
            dtype="int16",
            device=device,
        )
        self._stream.start()
        self._closed = False

    def read_frame(self, num_samples: int) -> bytes:
        data, _overflowed = self._stream.read(num_samples)
        return bytes(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.stop()
        self._stream.close()


class WaveFileSink:
    """Write played chunks to a WAV file instead of a speaker."""

    def __init__(
        self,
        path: str | Path,
        *,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
    ) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self._wf = wave.open(str(target), "wb")  # pylint: disable=consider-using-with
        self._wf.setnchannels(AUDIO_CHANNELS)
        self._wf.setsampwidth(AUDIO_SAMPLE_WIDTH_BYTES)
        self._wf.setframerate(sample_rate_hz)
        self._closed = False

    def write(self, pcm_bytes: bytes) -> None:
        self._wf.writeframes(pcm_bytes)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wf.close()
