"""
Transcription adapter contract.

This module defines the *interface only*.

Key invariants:
- Input is one complete WAV byte sequence (header + PCM16 mono).
- Output is the plain-text transcript.
- Any provider failure propagates as an exception; the reply pipeline
  turns it into a stage error for the client. Adapters never retry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class TranscriptionAdapter(ABC):
    """
    Abstract request/response speech-to-text collaborator.

    Implementations must be safe for concurrent use by many sessions;
    one instance is shared process-wide.
    """

    @abstractmethod
    async def transcribe(self, wav_bytes: bytes) -> str:
        """
        Transcribe a complete WAV recording.

        Returns:
            The transcript text (may be empty if nothing was recognized).

        Raises:
            Any provider exception; callers treat it as fatal for the reply.
        """
        raise NotImplementedError
