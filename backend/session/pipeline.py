"""
Reply pipeline: assembled utterance -> transcript -> reply text -> WAV.

Responsibilities:
- Wrap headerless PCM input as WAV before transcription
- Await the three collaborators sequentially, each under timed()
- Normalize the synthesized audio to a complete WAV payload
- Turn any stage failure into ReplyError(stage, reason)

NOT responsible for:
- Sending anything on the transport
- Pacing or chunking (see delivery.scheduler)
- Retries
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from adapters.asr.base import TranscriptionAdapter
from adapters.llm.base import ReplyAdapter
from adapters.tts.base import SynthesisAdapter
from audio.wav import WavFormat, has_wav_header, parse_wav_header_or_default, wrap_pcm_as_wav
from observability.logger import log_event
from observability.metrics import timed
from spec import AUDIO_SAMPLE_RATE_HZ, TTS_VOICE_DEFAULT


class ReplyStage(str, Enum):
    """Pipeline stage names, as reported to the device."""
    TRANSCRIPTION = "transcription"
    REPLY = "reply"
    SYNTHESIS = "synthesis"


class ReplyError(Exception):
    """A collaborator stage failed or returned nothing usable."""

    def __init__(self, stage: ReplyStage, reason: str) -> None:
        super().__init__(f"{stage.value}: {reason}")
        self.stage = stage
        self.reason = reason


@dataclass(frozen=True)
class ReplyResult:
    """Everything the gateway needs to answer one utterance."""
    transcript: str
    reply_text: str
    wav_bytes: bytes
    fmt: WavFormat


class ReplyPipeline:
    """
    Stateless across calls; one instance is shared by every session.
    """

    def __init__(
        self,
        transcriber: TranscriptionAdapter,
        replier: ReplyAdapter,
        synthesizer: SynthesisAdapter,
        *,
        voice: str = TTS_VOICE_DEFAULT,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
    ) -> None:
        self._transcriber = transcriber
        self._replier = replier
        self._synthesizer = synthesizer
        self._voice = voice
        self._input_fmt = WavFormat(sample_rate_hz=sample_rate_hz)

    async def run(self, audio_bytes: bytes, *, session_id: str | None = None) -> ReplyResult:
        """
        Produce the spoken reply for one assembled utterance.

        Raises:
            ReplyError: on the first failing or empty stage.
        """
        if not audio_bytes:
            raise ValueError("audio_bytes must be non-empty")

        wav_in = audio_bytes
        if not has_wav_header(audio_bytes):
            wav_in = wrap_pcm_as_wav(audio_bytes, self._input_fmt)

        # ---- transcription ----
        try:
            with timed("transcription", session_id=session_id,
                       details={"input_bytes": len(wav_in)}):
                transcript = (await self._transcriber.transcribe(wav_in)).strip()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise ReplyError(ReplyStage.TRANSCRIPTION, _reason(exc)) from exc
        if not transcript:
            raise ReplyError(ReplyStage.TRANSCRIPTION, "empty transcript")

        log_event({
            "event_type": "TRANSCRIPT_READY",
            "session_id": session_id,
            "chars": len(transcript),
        })

        # ---- reply generation ----
        try:
            with timed("reply_generation", session_id=session_id):
                reply_text = (await self._replier.generate_reply(transcript=transcript)).strip()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise ReplyError(ReplyStage.REPLY, _reason(exc)) from exc
        if not reply_text:
            raise ReplyError(ReplyStage.REPLY, "empty reply")

        # ---- synthesis ----
        try:
            with timed("synthesis", session_id=session_id,
                       details={"chars": len(reply_text)}):
                audio = await self._synthesizer.synthesize(text=reply_text, voice=self._voice)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise ReplyError(ReplyStage.SYNTHESIS, _reason(exc)) from exc
        if not audio.audio_bytes:
            raise ReplyError(ReplyStage.SYNTHESIS, "empty audio")

        if audio.has_header:
            wav_out = audio.audio_bytes
            fmt, _ = parse_wav_header_or_default(wav_out, audio.fmt)
        else:
            wav_out = wrap_pcm_as_wav(audio.audio_bytes, audio.fmt)
            fmt = audio.fmt

        log_event({
            "event_type": "REPLY_READY",
            "session_id": session_id,
            "transcript_chars": len(transcript),
            "reply_chars": len(reply_text),
            "wav_bytes": len(wav_out),
        })

        return ReplyResult(
            transcript=transcript,
            reply_text=reply_text,
            wav_bytes=wav_out,
            fmt=fmt,
        )


def _reason(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__
