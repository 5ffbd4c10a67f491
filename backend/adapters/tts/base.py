"""
Speech-synthesis adapter contract.

This module defines the *interface only*: no chunking, no pacing, no
WAV header policy beyond declaring what the provider returned.

Key invariants:
- One call synthesizes the whole reply text.
- The result says whether the bytes already carry a WAV header; the
  reply pipeline prepends one when they are raw PCM.
- Any provider failure propagates; fatal for that reply. No retries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from audio.wav import DEFAULT_WAV_FORMAT, WavFormat


@dataclass(frozen=True)
class SynthesizedAudio:
    """
    Provider output.

    audio_bytes:
        Either raw PCM16 (has_header=False) in `fmt`, or a complete WAV
        byte sequence (has_header=True), in which case `fmt` is advisory.
    """
    audio_bytes: bytes
    has_header: bool
    fmt: WavFormat = DEFAULT_WAV_FORMAT


class SynthesisAdapter(ABC):
    """
    Abstract request/response text-to-speech collaborator.

    Implementations must be safe for concurrent use by many sessions.
    """

    @abstractmethod
    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        """
        Synthesize `text` with `voice`.

        Raises:
            Any provider exception; fatal for the reply.
        """
        raise NotImplementedError
