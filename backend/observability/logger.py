"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Level filtering and plain-text mode are process-wide settings
- Never raises
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


_LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
}

_min_level: int = _LEVELS["INFO"]
_json_lines: bool = True


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def configure_logging(*, level: str = "INFO", json_lines: bool = True) -> None:
    """
    Set the process-wide minimum level and output format.

    Unknown level names fall back to INFO.
    """
    global _min_level, _json_lines  # pylint: disable=global-statement
    _min_level = _LEVELS.get(level.upper(), _LEVELS["INFO"])
    _json_lines = json_lines


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _format_plain(event: Mapping[str, Any]) -> str:
    head = f"{event.get('ts_ms')} {event.get('level', 'INFO')} {event.get('event_type')}"
    rest = " ".join(
        f"{k}={v!r}"
        for k, v in event.items()
        if k not in ("ts_ms", "level", "event_type")
    )
    return f"{head} {rest}".rstrip()


def log_event(event: Mapping[str, Any], *, level: str = "INFO") -> None:
    """
    Write a single log event.

    The caller supplies at least "event_type". This function:
    - Stamps ts_ms and level when the caller did not
    - Drops the event if below the configured level
    - Serializes to JSON (or key=value text when JSON logs are off)
    - Writes exactly one line, flushed
    - Never raises
    """
    if _LEVELS.get(level.upper(), _LEVELS["INFO"]) < _min_level:
        return

    record: dict[str, Any] = {"ts_ms": _now_ms(), "level": level.upper()}
    record.update(event)

    if not _json_lines:
        _print(_format_plain(record))
        return

    try:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": record.get("ts_ms"),
            "level": "ERROR",
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)


def log_exception(event_type: str, exc: BaseException, **fields: Any) -> None:
    """Log an exception as an ERROR event with its type and message."""
    log_event(
        {
            "event_type": event_type,
            "exception": type(exc).__name__,
            "message": str(exc),
            **fields,
        },
        level="ERROR",
    )
