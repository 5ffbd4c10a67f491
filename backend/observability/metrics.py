"""
Metrics and timing helpers for observability.

Two metric kinds, both emitted as single JSONL events:

- METRIC_TIMER: duration of one collaborator stage or one paced
  delivery, with outcome "ok" or "error"
- METRIC_COUNT: a byte or chunk total observed at the end of a unit of
  work (inbound utterance size, ring overflow, chunks delivered)

Nothing is aggregated in-process. Durations use monotonic time; event
timestamps are stamped by the logger.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Start a monotonic timer.

    Returns:
        timer_id (str): Opaque ID required to stop the timer later.

    Callers MUST call stop_timer() in a finally block
    unless using the `timed()` context manager.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    session_id: str | None = None,
    outcome: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Stop a previously started timer and emit a metric event.

    Returns:
        duration_ms if the timer existed, else None
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "session_id": session_id,
        "outcome": outcome,
        "details": details or {},
    })

    return duration_ms


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Context manager for measuring durations safely.

    Guarantees:
    - Timer is ALWAYS stopped (no leaks)
    - Metric is emitted exactly once, with outcome "ok" or "error"
    - Exceptions inside the block propagate unchanged

    Usage:
        with timed("transcription", session_id=session.session_id):
            transcript = await transcriber.transcribe(wav_bytes)
    """
    timer_id = start_timer(name)
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        stop_timer(
            timer_id,
            session_id=session_id,
            outcome=outcome,
            details=details,
        )


def record_count(
    name: str,
    value: int,
    *,
    session_id: str | None = None,
    unit: str = "bytes",
    details: dict[str, Any] | None = None,
) -> None:
    """Emit one METRIC_COUNT event."""
    log_event({
        "event_type": "METRIC_COUNT",
        "metric": name,
        "value": value,
        "unit": unit,
        "session_id": session_id,
        "details": details or {},
    })
