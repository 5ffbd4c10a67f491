"""
OpenAI Whisper transcription adapter.

Uploads the assembled WAV to the audio transcription endpoint and
returns the recognized text. No buffering, no retries: the caller owns
the failure policy.
"""

from __future__ import annotations

from typing import Any

from adapters.asr.base import TranscriptionAdapter
from spec import TRANSCRIPTION_MODEL_DEFAULT


class WhisperAPITranscriber(TranscriptionAdapter):
    """Transcription via `client.audio.transcriptions.create`."""

    def __init__(
        self,
        *,
        client: Any,  # Type: openai.AsyncOpenAI
        model: str = TRANSCRIPTION_MODEL_DEFAULT,
        language: str | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._language = language

    async def transcribe(self, wav_bytes: bytes) -> str:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "file": ("audio.wav", wav_bytes, "audio/wav"),
        }
        if self._language is not None:
            kwargs["language"] = self._language

        result = await self._client.audio.transcriptions.create(**kwargs)
        return (getattr(result, "text", "") or "").strip()
