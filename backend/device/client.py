"""
Device-side conversation turn.

One turn:

1. Record one utterance with the voice-activity gated recorder.
   An empty recording ends the turn: nothing is sent.
2. Connect, stream the WAV in fixed-size binary chunks, send "done".
3. Start the playback thread on a fresh ring buffer, send "ready".
4. Write every inbound binary frame into the ring until the server
   ends the reply ("done", "no_audio" or "error") or the connection
   drops, then finish the ring and wait for playback to drain.

If the server cannot be reached the recording stays in the local
recording directory (when configured) and the turn reports it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import websockets

from audio.frame_generator import iter_chunks
from audio.ring_buffer import RingBuffer
from config import AppConfig
from device.playback import PlaybackScheduler
from device.recorder import RecordingResult, VadSettings, VoiceActivityRecorder
from device.sinks import AudioSink, MicrophoneSource
from observability.logger import log_event
from observability.metrics import record_count
from protocol.control import ServerMessage, decode_server_text
from spec import CTRL_DONE, CTRL_READY, DEVICE_CONNECT_TIMEOUT_S


@dataclass
class TurnResult:
    """What happened during one device turn."""
    recording: RecordingResult
    connected: bool = False
    sent_bytes: int = 0
    received_audio_bytes: int = 0
    dropped_bytes: int = 0
    chunks_played: int = 0
    messages: list[ServerMessage] = field(default_factory=list)
    fallback_path: Path | None = None

    @property
    def final_message(self) -> ServerMessage | None:
        for msg in reversed(self.messages):
            if msg.ends_reply:
                return msg
        return None


class DeviceClient:
    """Record -> stream -> receive -> play, one turn at a time."""

    def __init__(
        self,
        *,
        config: AppConfig,
        microphone: MicrophoneSource,
        sink_factory: Callable[[], AudioSink],
        connect: Callable[..., Any] = websockets.connect,
        connect_timeout_s: float = DEVICE_CONNECT_TIMEOUT_S,
    ) -> None:
        self._config = config
        self._sink_factory = sink_factory
        self._connect = connect
        self._connect_timeout_s = connect_timeout_s
        self._recorder = VoiceActivityRecorder(
            microphone,
            settings=VadSettings(
                amplitude_threshold=config.vad_amplitude_threshold,
                silence_ms=config.vad_silence_ms,
                timeout_ms=config.vad_timeout_ms,
                max_record_ms=config.vad_max_record_ms,
                sample_rate_hz=config.sample_rate_hz,
            ),
            recording_dir=config.device_recording_dir,
        )
        if not config.burst_fits_ring:
            log_event({
                "event_type": "DEVICE_RING_UNDERSIZED",
                "ring_capacity_bytes": config.ring_capacity_bytes,
                "burst_fraction": config.burst_fraction,
                "lossless_reply_ms": round(config.lossless_reply_ms),
                "vad_max_record_ms": config.vad_max_record_ms,
            }, level="WARNING")

    async def run_turn(self) -> TurnResult:
        """Run one full turn. Never raises for network failures."""
        recording = await asyncio.to_thread(self._recorder.record)
        result = TurnResult(recording=recording)

        if recording.is_empty:
            log_event({
                "event_type": "DEVICE_TURN_SKIPPED",
                "stop_reason": recording.stop_reason.value,
            })
            return result

        assert recording.wav_bytes is not None
        try:
            async with self._connect(
                self._config.device_server_url,
                open_timeout=self._connect_timeout_s,
            ) as ws:
                result.connected = True
                await self._exchange(ws, recording.wav_bytes, result)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as exc:
            if not result.connected:
                result.fallback_path = recording.archived_path
                log_event({
                    "event_type": "DEVICE_CONNECT_FAILED",
                    "url": self._config.device_server_url,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                    "fallback_path": str(recording.archived_path) if recording.archived_path else None,
                }, level="WARNING")
            else:
                log_event({
                    "event_type": "DEVICE_CONNECTION_LOST",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                }, level="WARNING")

        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _exchange(self, ws: Any, wav_bytes: bytes, result: TurnResult) -> None:
        ring = RingBuffer(self._config.ring_capacity_bytes)
        playback = PlaybackScheduler(
            ring,
            self._sink_factory(),
            start_threshold=self._config.start_threshold_bytes,
            chunk_bytes=self._config.chunk_bytes,
            gain=self._config.playback_gain,
            sample_rate_hz=self._config.sample_rate_hz,
        )
        playback.start()

        try:
            for chunk in iter_chunks(wav_bytes, self._config.chunk_bytes):
                await ws.send(chunk)
                result.sent_bytes += len(chunk)
            await ws.send(CTRL_DONE)
            await ws.send(CTRL_READY)

            log_event({
                "event_type": "DEVICE_UPLOAD_DONE",
                "sent_bytes": result.sent_bytes,
            })

            await self._receive(ws, ring, result)
        finally:
            ring.finish()
            await asyncio.to_thread(playback.wait)
            result.dropped_bytes = ring.dropped_bytes
            result.chunks_played = playback.chunks_played
            record_count("ring_dropped", result.dropped_bytes)

    async def _receive(self, ws: Any, ring: RingBuffer, result: TurnResult) -> None:
        async for message in ws:
            if isinstance(message, (bytes, bytearray)):
                ring.write(bytes(message))
                result.received_audio_bytes += len(message)
                continue

            msg = decode_server_text(message)
            result.messages.append(msg)
            log_event({
                "event_type": "DEVICE_SERVER_MESSAGE",
                "msg_type": msg.msg_type,
                **msg.fields,
            })
            if msg.ends_reply:
                return
