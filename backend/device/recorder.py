"""
Voice-activity gated recorder (device side).

Pulls fixed-size frames from the microphone continuously and decides,
frame by frame, whether to keep them:

    AWAITING_SPEECH --(loud frame)------------------> RECORDING
    AWAITING_SPEECH --(elapsed >= timeout)----------> DONE   (no speech)
    RECORDING       --(silence >= silence_ms)-------> DONE
    RECORDING       --(captured >= max_record_ms)---> DONE

Leading silence is never kept. A loud frame resets the silence counter,
a quiet frame adds its duration to it; quiet frames inside the recording
are kept so pauses survive. A recording with zero captured bytes yields
no WAV at all.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from audio.frames import AudioFrame
from audio.vad import AmplitudeGate
from audio.wav import WavFormat, WavWriter, write_wav_file
from device.sinks import MicrophoneSource
from observability.logger import log_event
from spec import (
    AUDIO_SAMPLE_RATE_HZ,
    VAD_AMPLITUDE_THRESHOLD,
    VAD_FRAME_SAMPLES,
    VAD_MAX_RECORD_MS,
    VAD_SILENCE_MS,
    VAD_TIMEOUT_MS,
)


class VadPhase(str, Enum):
    """Recorder phase."""
    AWAITING_SPEECH = "awaiting_speech"
    RECORDING = "recording"
    DONE = "done"


class StopReason(str, Enum):
    """Why a recording ended."""
    NO_SPEECH_TIMEOUT = "no_speech_timeout"
    SILENCE = "silence"
    MAX_DURATION = "max_duration"
    SOURCE_EXHAUSTED = "source_exhausted"


@dataclass(frozen=True)
class VadSettings:
    """Thresholds and durations driving the phase transitions."""
    amplitude_threshold: float = VAD_AMPLITUDE_THRESHOLD
    silence_ms: int = VAD_SILENCE_MS
    timeout_ms: int = VAD_TIMEOUT_MS
    max_record_ms: int = VAD_MAX_RECORD_MS
    frame_samples: int = VAD_FRAME_SAMPLES
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ


@dataclass(frozen=True)
class VadStep:
    """Outcome of feeding one frame through the transition function."""
    phase: VadPhase
    keep_frame: bool
    silence_ms: float
    stop_reason: StopReason | None = None


def next_phase(
    phase: VadPhase,
    *,
    is_speech: bool,
    elapsed_ms: float,
    silence_ms: float,
    frame_ms: float,
    recorded_ms: float,
    settings: VadSettings,
) -> VadStep:
    """
    Pure transition function for one observed frame.

    Args:
        phase: current phase
        is_speech: gate decision for this frame
        elapsed_ms: time since recording started, including this frame
        silence_ms: accumulated silence before this frame
        frame_ms: duration of this frame
        recorded_ms: audio kept so far, excluding this frame
    """
    if phase == VadPhase.DONE:
        return VadStep(phase=VadPhase.DONE, keep_frame=False, silence_ms=silence_ms)

    if phase == VadPhase.AWAITING_SPEECH:
        if is_speech:
            return VadStep(phase=VadPhase.RECORDING, keep_frame=True, silence_ms=0.0)
        if elapsed_ms >= settings.timeout_ms:
            return VadStep(
                phase=VadPhase.DONE,
                keep_frame=False,
                silence_ms=0.0,
                stop_reason=StopReason.NO_SPEECH_TIMEOUT,
            )
        return VadStep(phase=VadPhase.AWAITING_SPEECH, keep_frame=False, silence_ms=0.0)

    # RECORDING
    new_silence = 0.0 if is_speech else silence_ms + frame_ms

    if recorded_ms + frame_ms >= settings.max_record_ms:
        return VadStep(
            phase=VadPhase.DONE,
            keep_frame=True,
            silence_ms=new_silence,
            stop_reason=StopReason.MAX_DURATION,
        )
    if new_silence >= settings.silence_ms:
        return VadStep(
            phase=VadPhase.DONE,
            keep_frame=True,
            silence_ms=new_silence,
            stop_reason=StopReason.SILENCE,
        )
    return VadStep(phase=VadPhase.RECORDING, keep_frame=True, silence_ms=new_silence)


@dataclass(frozen=True)
class RecordingResult:
    """
    Outcome of one recording session.

    wav_bytes is None when nothing was captured; callers must not
    stream or store anything in that case.
    """
    wav_bytes: bytes | None
    pcm_bytes_captured: int
    speech_detected: bool
    stop_reason: StopReason
    duration_ms: float
    archived_path: Path | None = None

    @property
    def is_empty(self) -> bool:
        return self.wav_bytes is None


class VoiceActivityRecorder:
    """
    Records one utterance from a MicrophoneSource.

    Elapsed time is counted in captured audio (frame durations), not wall
    clock, so the timeout is exact for a blocking source and tests can feed
    synthetic frames.
    """

    def __init__(
        self,
        source: MicrophoneSource,
        *,
        settings: VadSettings | None = None,
        recording_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._settings = settings or VadSettings()
        self._gate = AmplitudeGate(self._settings.amplitude_threshold)
        self._recording_dir = Path(recording_dir) if recording_dir else None
        self._clock = clock
        self._phase = VadPhase.AWAITING_SPEECH

    @property
    def phase(self) -> VadPhase:
        return self._phase

    def record(self, read_frame: Callable[[int], bytes] | None = None) -> RecordingResult:
        """
        Run the phase machine until DONE and return the captured audio.

        Args:
            read_frame: optional override of source.read_frame; an empty
                return value means the source is exhausted.
        """
        read = read_frame or self._source.read_frame
        settings = self._settings
        writer = WavWriter(WavFormat(sample_rate_hz=settings.sample_rate_hz))

        self._phase = VadPhase.AWAITING_SPEECH
        self._gate.reset()
        elapsed_ms = 0.0
        silence_ms = 0.0
        recorded_ms = 0.0
        speech_detected = False
        stop_reason = StopReason.SOURCE_EXHAUSTED

        log_event({
            "event_type": "VAD_RECORDING_STARTED",
            "threshold": settings.amplitude_threshold,
            "timeout_ms": settings.timeout_ms,
            "silence_ms": settings.silence_ms,
        })

        while self._phase != VadPhase.DONE:
            pcm = read(settings.frame_samples)
            if not pcm:
                break

            frame = AudioFrame(
                pcm_bytes=pcm,
                ts_ms=int(self._clock() * 1000),
                sample_rate_hz=settings.sample_rate_hz,
            )
            decision = self._gate.observe(frame.pcm_bytes)
            elapsed_ms += frame.duration_ms

            step = next_phase(
                self._phase,
                is_speech=decision.is_speech,
                elapsed_ms=elapsed_ms,
                silence_ms=silence_ms,
                frame_ms=frame.duration_ms,
                recorded_ms=recorded_ms,
                settings=settings,
            )

            if step.phase == VadPhase.RECORDING and self._phase == VadPhase.AWAITING_SPEECH:
                speech_detected = True
                log_event({
                    "event_type": "VAD_SPEECH_DETECTED",
                    "amplitude": decision.amplitude,
                    "elapsed_ms": elapsed_ms,
                })

            if step.keep_frame:
                writer.append(frame.pcm_bytes)
                recorded_ms += frame.duration_ms

            silence_ms = step.silence_ms
            self._phase = step.phase
            if step.stop_reason is not None:
                stop_reason = step.stop_reason

        self._phase = VadPhase.DONE
        wav_bytes = writer.finalize()

        archived: Path | None = None
        if wav_bytes is not None and self._recording_dir is not None:
            archived = write_wav_file(
                self._recording_dir / f"rec_{int(self._clock() * 1000)}.wav",
                wav_bytes,
            )

        log_event({
            "event_type": "VAD_RECORDING_DONE",
            "stop_reason": stop_reason.value,
            "speech_detected": speech_detected,
            "pcm_bytes": writer.data_len,
            "duration_ms": recorded_ms,
            "archived_path": str(archived) if archived else None,
        })

        return RecordingResult(
            wav_bytes=wav_bytes,
            pcm_bytes_captured=writer.data_len,
            speech_detected=speech_detected,
            stop_reason=stop_reason,
            duration_ms=recorded_ms,
            archived_path=archived,
        )
