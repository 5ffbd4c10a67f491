"""
Playback scheduler (device side).

Drains the reply RingBuffer into an AudioSink on its own thread, isolated
from the network receiver that fills the ring.

State machine:

    WAITING_FOR_FILL --(fill >= start_threshold OR finished)--> SKIPPING_HEADER
    SKIPPING_HEADER  --(header_bytes discarded)----------------> PLAYING
    SKIPPING_HEADER  --(finished AND empty)--------------------> FINISHED
    PLAYING          --(finished AND empty)--------------------> FINISHED

- The fill gate absorbs network jitter before the first sample plays;
  `finished` releases it for short replies that never reach the threshold.
- The WAV header is discarded one byte at a time so it may still be
  arriving when the gate opens.
- Each chunk gets linear gain with int16 saturation, is written to the
  sink, and is followed by a sleep covering the rest of the chunk's
  real-time duration, so the ring drains at playback speed.
- The sink is closed on every exit path, including errors. Sink write
  errors are not retried.
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable

from audio.pcm import apply_gain
from audio.ring_buffer import RingBuffer
from device.sinks import AudioSink
from observability.logger import log_event, log_exception
from spec import (
    AUDIO_SAMPLE_RATE_HZ,
    PLAYBACK_CHUNK_BYTES,
    PLAYBACK_GAIN,
    PLAYBACK_POLL_INTERVAL_MS,
    WAV_HEADER_BYTES,
    bytes_to_ms,
)


class PlaybackState(str, Enum):
    """Playback phase."""
    WAITING_FOR_FILL = "waiting_for_fill"
    SKIPPING_HEADER = "skipping_header"
    PLAYING = "playing"
    FINISHED = "finished"


def next_state(
    state: PlaybackState,
    *,
    fill: int,
    finished: bool,
    start_threshold: int,
    header_remaining: int,
) -> PlaybackState:
    """Pure transition function; returns `state` when no transition applies."""
    drained = finished and fill == 0

    if state == PlaybackState.WAITING_FOR_FILL:
        if fill >= start_threshold or finished:
            if header_remaining > 0:
                return PlaybackState.SKIPPING_HEADER
            return PlaybackState.PLAYING
        return state

    if state == PlaybackState.SKIPPING_HEADER:
        if header_remaining == 0:
            return PlaybackState.PLAYING
        if drained:
            return PlaybackState.FINISHED
        return state

    if state == PlaybackState.PLAYING:
        if drained:
            return PlaybackState.FINISHED
        return state

    return PlaybackState.FINISHED


class PlaybackScheduler:
    """Consumer side of the reply ring buffer."""

    def __init__(
        self,
        buffer: RingBuffer,
        sink: AudioSink,
        *,
        start_threshold: int,
        chunk_bytes: int = PLAYBACK_CHUNK_BYTES,
        header_bytes: int = WAV_HEADER_BYTES,
        gain: float = PLAYBACK_GAIN,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
        poll_interval_s: float = PLAYBACK_POLL_INTERVAL_MS / 1000.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if chunk_bytes <= 0 or chunk_bytes > buffer.capacity:
            raise ValueError("chunk_bytes must be in (0, buffer.capacity]")

        self._buffer = buffer
        self._sink = sink
        self._start_threshold = min(start_threshold, buffer.capacity)
        self._chunk_bytes = chunk_bytes
        self._header_bytes = header_bytes
        self._gain = gain
        self._sample_rate_hz = sample_rate_hz
        self._poll_interval_s = poll_interval_s
        self._sleep = sleep
        self._clock = clock

        self._state = PlaybackState.WAITING_FOR_FILL
        self._done = threading.Event()
        self._thread: threading.Thread | None = None

        self.header_bytes_skipped = 0
        self.chunks_played = 0
        self.bytes_played = 0
        self.state_history: list[PlaybackState] = [self._state]
        self.error: BaseException | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def done(self) -> bool:
        return self._done.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run the scheduler on a dedicated daemon thread."""
        if self._thread is not None:
            raise RuntimeError("playback already started")
        self._thread = threading.Thread(target=self.run, name="playback", daemon=True)
        self._thread.start()
        return self._thread

    def wait(self, timeout: float | None = None) -> bool:
        """Block until playback finished. Returns False on timeout."""
        return self._done.wait(timeout=timeout)

    def run(self) -> None:
        """Run the whole state machine on the calling thread."""
        try:
            self._run_states()
        except Exception as exc:
            self.error = exc
            log_exception("PLAYBACK_ERROR", exc, state=self._state.value)
            raise
        finally:
            self._sink.close()
            self._transition(PlaybackState.FINISHED)
            log_event({
                "event_type": "PLAYBACK_FINISHED",
                "chunks_played": self.chunks_played,
                "bytes_played": self.bytes_played,
                "header_bytes_skipped": self.header_bytes_skipped,
                "ring": self._buffer.snapshot(),
            })
            self._done.set()

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _run_states(self) -> None:
        while self._state != PlaybackState.FINISHED:
            if self._state == PlaybackState.WAITING_FOR_FILL:
                self._wait_for_fill()
            elif self._state == PlaybackState.SKIPPING_HEADER:
                self._skip_header()
            elif self._state == PlaybackState.PLAYING:
                self._play()
            self._advance()

    def _advance(self) -> None:
        self._transition(
            next_state(
                self._state,
                fill=self._buffer.fill,
                finished=self._buffer.finished,
                start_threshold=self._start_threshold,
                header_remaining=self._header_bytes - self.header_bytes_skipped,
            )
        )

    def _transition(self, new_state: PlaybackState) -> None:
        if new_state == self._state:
            return
        log_event({
            "event_type": "PLAYBACK_STATE",
            "from": self._state.value,
            "to": new_state.value,
            "fill": self._buffer.fill,
        }, level="DEBUG")
        self._state = new_state
        self.state_history.append(new_state)

    def _wait_for_fill(self) -> None:
        # poll-bounded wait; the ring's condition wakes us early on writes
        while not self._buffer.wait_for_fill(
            self._start_threshold, timeout=self._poll_interval_s
        ):
            pass

    def _skip_header(self) -> None:
        remaining = self._header_bytes - self.header_bytes_skipped
        self.header_bytes_skipped += self._buffer.skip(remaining)

    def _play(self) -> None:
        while not self._buffer.drained:
            chunk = self._buffer.read_exact(self._chunk_bytes)
            if not chunk:
                continue

            out = apply_gain(chunk, self._gain)

            started = self._clock()
            self._sink.write(out)
            spent = self._clock() - started

            self.chunks_played += 1
            self.bytes_played += len(chunk)

            duration_s = bytes_to_ms(len(chunk), sample_rate_hz=self._sample_rate_hz) / 1000.0
            self._sleep(max(0.0, duration_s - spent))
