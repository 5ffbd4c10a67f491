"""
Session gateway (stream assembler + reply dispatch).

Responsibilities:
- Owns StreamSession lifecycle (one gateway == one connection)
- Tracks connection_status independently of reply progress
- Routes inbound binary frames -> session accumulation
- Routes inbound text -> finalize / readiness flag / diagnostic echo
- Finalizes at most once, on "done" or on transport close
- Runs the reply pipeline as a per-session task and hands the result
  to paced delivery

NOT responsible for:
- Transcription / reply / synthesis internals
- Chunking and pacing math
- Anything shared between connections beyond the pipeline
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Awaitable, Callable, TYPE_CHECKING

from uuid import uuid4

from audio.wav import WavFormat, has_wav_header, wrap_pcm_as_wav, write_wav_file
from delivery.scheduler import DeliveryReport, PacedDeliveryScheduler
from observability.logger import log_event, log_exception
from observability.metrics import record_count
from protocol.control import (
    MSG_ERROR,
    MSG_NO_AUDIO,
    MSG_REPLY,
    MSG_TRANSCRIPT,
    InboundKind,
    TransportClosedError,
    classify_text,
    echo_text,
    encode_control,
)
from protocol.transport import Transport
from session.connection_status import ConnectionStatus
from session.pipeline import ReplyError, ReplyPipeline
from session.voice_session import StreamSession

if TYPE_CHECKING:
    from config import AppConfig

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    One gateway == one stream session.

    The receive loop calls on_* methods in arrival order. Replies run in
    a background task so "ready" is handled while the pipeline is busy.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        pipeline: ReplyPipeline,
        transport: Transport,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

        self.session: StreamSession | None = None
        self.last_delivery: DeliveryReport | None = None
        self._reply_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> StreamSession:
        """Called once the WebSocket has been accepted."""
        self.session = StreamSession(session_id=_new_session_id())
        self.session.connection_status = ConnectionStatus.UP

        log_event({
            "event_type": "SESSION_STARTED",
            **self.session.log_context(),
        })
        return self.session

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """
        Called when the connection is gone (either side, or error).

        A session that was never finalized is finalized now; the reply
        still runs, and delivery then aborts on the closed transport.
        """
        self._transport.mark_closed()

        if self.session is None:
            log_event({
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return

        self.session.connection_status = ConnectionStatus.DOWN
        log_event({
            "event_type": "WS_DISCONNECTED",
            "reason": reason,
            **self.session.log_context(),
        })

        if not self.session.finalized:
            await self.finalize(reason="transport_closed")

        await self.wait_idle()

        log_event({
            "event_type": "SESSION_ENDED",
            "received_bytes": self.session.received_bytes,
            "rejected_chunks": self.session.rejected_chunks,
            **self.session.log_context(),
        })

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_binary_message(self, payload: bytes) -> None:
        """Accumulate one inbound audio chunk."""
        if self.session is None:
            log_event({
                "event_type": "BINARY_WITHOUT_SESSION",
                "payload_len": len(payload),
            }, level="WARNING")
            return

        if not self.session.append(payload):
            log_event({
                "event_type": "CHUNK_AFTER_FINALIZE",
                "session_id": self.session.session_id,
                "payload_len": len(payload),
            }, level="WARNING")

    async def on_text_message(self, text: str) -> None:
        """Route one inbound text frame."""
        if self.session is None:
            log_event({
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": text[:100],
            }, level="WARNING")
            return

        inbound = classify_text(text)

        if inbound.kind == InboundKind.DONE:
            await self.finalize(reason="client_done")
        elif inbound.kind == InboundKind.READY:
            self.session.mark_ready()
            log_event({
                "event_type": "CLIENT_READY",
                "session_id": self.session.session_id,
            })
        else:
            await self._send_text(echo_text(text))

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    async def finalize(self, *, reason: str) -> bool:
        """
        Close accumulation and start the reply.

        Returns:
            False when the session was already finalized (no-op).
        """
        if self.session is None:
            return False

        payload = self.session.finalize(reason)
        if payload is None:
            log_event({
                "event_type": "FINALIZE_IGNORED",
                "session_id": self.session.session_id,
                "reason": reason,
            })
            return False

        log_event({
            "event_type": "SESSION_FINALIZED",
            "session_id": self.session.session_id,
            "reason": reason,
            "payload_len": len(payload),
            "chunks": self.session.received_chunks,
        })
        record_count(
            "inbound_utterance",
            len(payload),
            session_id=self.session.session_id,
            details={"chunks": self.session.received_chunks},
        )

        if not payload:
            await self._send_text(encode_control(MSG_NO_AUDIO))
            return True

        self._archive(payload)
        self._reply_task = asyncio.create_task(self._reply(payload))
        return True

    async def wait_idle(self) -> None:
        """Wait for the in-flight reply task, if any."""
        if self._reply_task is not None:
            await self._reply_task

    # ------------------------------------------------------------------
    # Reply
    # ------------------------------------------------------------------

    async def _reply(self, payload: bytes) -> None:
        assert self.session is not None
        session_id = self.session.session_id

        try:
            result = await self._pipeline.run(payload, session_id=session_id)
        except ReplyError as exc:
            log_event({
                "event_type": "REPLY_FAILED",
                "session_id": session_id,
                "stage": exc.stage.value,
                "reason": exc.reason,
            }, level="ERROR")
            await self._send_text(
                encode_control(MSG_ERROR, stage=exc.stage.value, reason=exc.reason)
            )
            return

        try:
            await self._transport.send_text(encode_control(MSG_TRANSCRIPT, text=result.transcript))
            await self._transport.send_text(encode_control(MSG_REPLY, text=result.reply_text))

            scheduler = PacedDeliveryScheduler(
                self._transport,
                chunk_bytes=self._config.chunk_bytes,
                burst_fraction=self._config.burst_fraction,
                wait_for_ready=self._config.wait_for_ready,
                handshake_timeout_s=self._config.handshake_timeout_s,
                default_fmt=WavFormat(sample_rate_hz=self._config.sample_rate_hz),
                session_id=session_id,
                sleep=self._sleep,
                clock=self._clock,
            )
            self.last_delivery = await scheduler.deliver(
                result.wav_bytes,
                fmt=result.fmt,
                ready=self.session.ready,
            )
            record_count(
                "chunks_delivered",
                self.last_delivery.chunks_sent,
                session_id=session_id,
                unit="chunks",
                details={"outcome": self.last_delivery.outcome.value},
            )
        except TransportClosedError as exc:
            log_event({
                "event_type": "REPLY_TRANSPORT_CLOSED",
                "session_id": session_id,
                "message": str(exc),
            }, level="WARNING")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_exception("REPLY_TASK_ERROR", exc, session_id=session_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _send_text(self, text: str) -> None:
        try:
            await self._transport.send_text(text)
        except TransportClosedError as exc:
            log_event({
                "event_type": "SEND_ON_CLOSED_TRANSPORT",
                "session_id": self.session.session_id if self.session else None,
                "message": str(exc),
            }, level="WARNING")

    def _archive(self, payload: bytes) -> None:
        """Write the assembled inbound audio to ARCHIVE_DIR, if configured."""
        if not self._config.archive_dir or self.session is None:
            return

        wav_bytes = payload
        if not has_wav_header(payload):
            wav_bytes = wrap_pcm_as_wav(
                payload, WavFormat(sample_rate_hz=self._config.sample_rate_hz)
            )

        target = Path(self._config.archive_dir) / f"{self.session.session_id}_{_now_ms()}.wav"
        try:
            write_wav_file(target, wav_bytes)
        except OSError as exc:
            log_exception("ARCHIVE_WRITE_FAILED", exc, session_id=self.session.session_id)
            return

        log_event({
            "event_type": "INBOUND_ARCHIVED",
            "session_id": self.session.session_id,
            "path": str(target),
            "bytes": len(wav_bytes),
        })
