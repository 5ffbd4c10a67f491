"""
OpenAI speech-synthesis adapter.

Requests either raw PCM ("pcm": 24 kHz, 16-bit signed little-endian,
mono, the device's native format) or a headered WAV ("wav").
"""

from __future__ import annotations

from typing import Any

from adapters.tts.base import SynthesisAdapter, SynthesizedAudio
from audio.wav import WavFormat
from spec import (
    AUDIO_BITS_PER_SAMPLE,
    AUDIO_CHANNELS,
    TTS_MODEL_DEFAULT,
    TTS_PCM_SAMPLE_RATE_HZ,
    TTS_RESPONSE_FORMAT_DEFAULT,
)

_OPENAI_PCM_FORMAT = WavFormat(
    sample_rate_hz=TTS_PCM_SAMPLE_RATE_HZ,
    channels=AUDIO_CHANNELS,
    bits_per_sample=AUDIO_BITS_PER_SAMPLE,
)


class OpenAITTSAdapter(SynthesisAdapter):
    """Synthesis via `client.audio.speech.create`."""

    def __init__(
        self,
        *,
        client: Any,  # Type: openai.AsyncOpenAI
        model: str = TTS_MODEL_DEFAULT,
        response_format: str = TTS_RESPONSE_FORMAT_DEFAULT,
    ) -> None:
        if response_format not in ("pcm", "wav"):
            raise ValueError(f"unsupported response_format: {response_format}")
        self._client = client
        self._model = model
        self._response_format = response_format

    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        response = await self._client.audio.speech.create(
            model=self._model,
            voice=voice,
            input=text,
            response_format=self._response_format,
        )
        audio = response.content

        return SynthesizedAudio(
            audio_bytes=audio,
            has_header=self._response_format == "wav",
            fmt=_OPENAI_PCM_FORMAT,
        )
