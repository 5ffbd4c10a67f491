"""
Paced delivery of a synthesized reply to a resource-constrained client.

Two phases over one DeliveryPlan:

1. Burst: the first `burst_chunks` chunks go out back-to-back, pushing the
   device ring above its playback start threshold as fast as the
   transport allows.
2. Paced: every later chunk waits `max(0, interval - elapsed)` after the
   previous send, where `elapsed` is how long that send took. Long-run
   delivery then matches real-time consumption regardless of transport
   jitter. The first paced chunk leaves one interval after the last
   burst chunk.

Before sending, an optional readiness handshake waits up to a bounded
timeout for the client's "ready"; a timeout is logged and delivery
proceeds anyway (the device ring provides slack).

After the last chunk a single {"type": "done"} completion marker is sent.
The moment the transport is seen closed, or a send fails, delivery aborts:
no retries and no completion marker.

All waiting goes through the injected async `sleep`, so one connection's
pacing never blocks another's message handling.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from audio.wav import DEFAULT_WAV_FORMAT, WavFormat
from delivery.plan import DeliveryPlan
from observability.logger import log_event
from observability.metrics import timed
from protocol.control import MSG_DONE, TransportClosedError, encode_control
from protocol.transport import Transport
from spec import (
    DELIVERY_BURST_FRACTION,
    DELIVERY_CHUNK_BYTES,
    DELIVERY_WAIT_FOR_READY,
    READY_HANDSHAKE_TIMEOUT_S,
)


class DeliveryOutcome(str, Enum):
    """How a delivery ended."""
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class DeliveryReport:
    """Result of one deliver() call."""
    outcome: DeliveryOutcome
    chunks_sent: int
    total_chunks: int
    burst_chunks: int
    chunk_interval_ms: int
    handshake_ready: bool | None
    completion_sent: bool

    @property
    def completed(self) -> bool:
        return self.outcome == DeliveryOutcome.COMPLETED


class PacedDeliveryScheduler:
    """Streams one complete payload to one transport at playback speed."""

    def __init__(
        self,
        transport: Transport,
        *,
        chunk_bytes: int = DELIVERY_CHUNK_BYTES,
        burst_fraction: float = DELIVERY_BURST_FRACTION,
        wait_for_ready: bool = DELIVERY_WAIT_FOR_READY,
        handshake_timeout_s: float = READY_HANDSHAKE_TIMEOUT_S,
        default_fmt: WavFormat = DEFAULT_WAV_FORMAT,
        session_id: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._chunk_bytes = chunk_bytes
        self._burst_fraction = burst_fraction
        self._wait_for_ready = wait_for_ready
        self._handshake_timeout_s = handshake_timeout_s
        self._default_fmt = default_fmt
        self._session_id = session_id
        self._sleep = sleep
        self._clock = clock

    def plan(self, payload: bytes, *, fmt: WavFormat | None = None) -> DeliveryPlan:
        """Build the plan deliver() would use for `payload`."""
        return DeliveryPlan.from_payload(
            payload,
            chunk_bytes=self._chunk_bytes,
            burst_fraction=self._burst_fraction,
            fmt=fmt,
            default_fmt=self._default_fmt,
        )

    async def deliver(
        self,
        payload: bytes,
        *,
        fmt: WavFormat | None = None,
        ready: asyncio.Event | None = None,
    ) -> DeliveryReport:
        """
        Send `payload` in burst + paced chunks, then the completion marker.

        Args:
            payload: complete WAV bytes (header included) or raw PCM.
            fmt: explicit format; parsed from the header when None.
            ready: readiness flag set by the receive loop on "ready".
        """
        plan = self.plan(payload, fmt=fmt)

        log_event({
            "event_type": "DELIVERY_PLANNED",
            "session_id": self._session_id,
            **plan.summary(),
        })
        if not plan.header_parsed:
            log_event({
                "event_type": "DELIVERY_FORMAT_DEFAULTED",
                "session_id": self._session_id,
                "payload_len": plan.total_bytes,
            }, level="WARNING")

        handshake_ready: bool | None = None
        if self._wait_for_ready and ready is not None:
            handshake_ready = await self._await_ready(ready)

        with timed("paced_delivery", session_id=self._session_id, details=plan.summary()):
            completed = await self._send_all(plan)

        if not completed:
            return self._report(plan, DeliveryOutcome.ABORTED, handshake_ready, False)

        try:
            await self._transport.send_text(encode_control(MSG_DONE))
        except TransportClosedError as exc:
            self._log_abort(plan, str(exc))
            return self._report(plan, DeliveryOutcome.ABORTED, handshake_ready, False)

        log_event({
            "event_type": "DELIVERY_COMPLETED",
            "session_id": self._session_id,
            "chunks_sent": plan.chunks_sent,
        })
        return self._report(plan, DeliveryOutcome.COMPLETED, handshake_ready, True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _await_ready(self, ready: asyncio.Event) -> bool:
        if ready.is_set():
            return True
        try:
            await asyncio.wait_for(ready.wait(), timeout=self._handshake_timeout_s)
            return True
        except asyncio.TimeoutError:
            log_event({
                "event_type": "READY_HANDSHAKE_TIMEOUT",
                "session_id": self._session_id,
                "timeout_s": self._handshake_timeout_s,
            }, level="WARNING")
            return False

    async def _send_all(self, plan: DeliveryPlan) -> bool:
        """Run burst then paced phase. Returns False if aborted."""
        interval_s = plan.chunk_interval_ms / 1000.0

        while not plan.exhausted:
            if not self._transport.is_open:
                self._log_abort(plan, "transport_not_open")
                return False

            chunk = plan.next_chunk()
            started = self._clock()
            try:
                await self._transport.send_bytes(chunk)
            except TransportClosedError as exc:
                self._log_abort(plan, str(exc))
                return False
            elapsed = self._clock() - started

            if plan.exhausted or plan.in_burst:
                continue

            await self._sleep(max(0.0, interval_s - elapsed))

        return True

    def _log_abort(self, plan: DeliveryPlan, reason: str) -> None:
        log_event({
            "event_type": "DELIVERY_ABORTED",
            "session_id": self._session_id,
            "reason": reason,
            "chunks_sent": plan.chunks_sent,
            "total_chunks": plan.total_chunks,
        }, level="WARNING")

    @staticmethod
    def _report(
        plan: DeliveryPlan,
        outcome: DeliveryOutcome,
        handshake_ready: bool | None,
        completion_sent: bool,
    ) -> DeliveryReport:
        return DeliveryReport(
            outcome=outcome,
            chunks_sent=plan.chunks_sent,
            total_chunks=plan.total_chunks,
            burst_chunks=plan.burst_chunks,
            chunk_interval_ms=plan.chunk_interval_ms,
            handshake_ready=handshake_ready,
            completion_sent=completion_sent,
        )
