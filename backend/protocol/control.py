"""
Message framing for the device <-> server WebSocket.

Binary messages are raw audio bytes in both directions. Text messages are
control messages:

- Device -> server: bare "done" (end of uplink audio) and "ready"
  (playback ring is ready to receive). JSON {"type": "done"} /
  {"type": "ready"} are accepted as well. Any other text is diagnostic
  and gets echoed back.

- Server -> device: JSON objects with a "type" field:
    {"type": "done"}                              end of reply audio
    {"type": "no_audio"}                          nothing was received
    {"type": "error", "stage": ..., "reason": ...}
    {"type": "transcript", "text": ...}
    {"type": "reply", "text": ...}
  Devices also accept the bare string "done".

Usage example:

    inbound = classify_text(text)
    if inbound.kind == InboundKind.DONE:
        ...

    await transport.send_text(encode_control(MSG_ERROR, stage="tts", reason="timeout"))
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from spec import (
    CTRL_DONE,
    CTRL_READY,
    ECHO_PREFIX,
    MSG_DONE,
    MSG_ERROR,
    MSG_NO_AUDIO,
    MSG_REPLY,
    MSG_TRANSCRIPT,
)


# -------------------------
# Exceptions
# -------------------------

class ControlProtocolError(Exception):
    """Base class for control framing errors."""


class TransportClosedError(ControlProtocolError):
    """
    Raised when sending on a connection that is closed or errored.

    Terminal for the operation in progress: callers abort, they never
    retry the send.
    """


# -------------------------
# Device -> server
# -------------------------

class InboundKind(str, Enum):
    """Classification of a device -> server text message."""
    DONE = "done"
    READY = "ready"
    OTHER = "other"


@dataclass(frozen=True)
class InboundText:
    """A classified device -> server text message."""
    kind: InboundKind
    text: str


def classify_text(text: str) -> InboundText:
    """
    Classify a device -> server text frame. Never raises.

    Matching is case-insensitive and ignores surrounding whitespace.
    """
    stripped = text.strip()
    token = stripped.lower()

    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            token = str(data.get("type", "")).strip().lower()

    if token == CTRL_DONE:
        return InboundText(kind=InboundKind.DONE, text=text)
    if token == CTRL_READY:
        return InboundText(kind=InboundKind.READY, text=text)
    return InboundText(kind=InboundKind.OTHER, text=text)


def echo_text(text: str) -> str:
    """Diagnostic echo for unrecognized text."""
    return ECHO_PREFIX + text


# -------------------------
# Server -> device
# -------------------------

def encode_control(msg_type: str, **fields: Any) -> str:
    """Serialize a server -> device control message."""
    return json.dumps({"type": msg_type, **fields}, ensure_ascii=False)


@dataclass(frozen=True)
class ServerMessage:
    """A decoded server -> device text message."""
    msg_type: str
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def ends_reply(self) -> bool:
        """True for messages after which no more reply audio will arrive."""
        return self.msg_type in (MSG_DONE, MSG_NO_AUDIO, MSG_ERROR)


def decode_server_text(text: str) -> ServerMessage:
    """
    Decode a server -> device text frame. Never raises.

    Bare "done" maps to a done message; non-JSON text becomes type "text".
    """
    stripped = text.strip()
    if stripped.lower() == CTRL_DONE:
        return ServerMessage(msg_type=MSG_DONE)

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return ServerMessage(msg_type="text", fields={"text": text})

    if not isinstance(data, dict) or "type" not in data:
        return ServerMessage(msg_type="text", fields={"text": text})

    msg_type = str(data["type"])
    return ServerMessage(
        msg_type=msg_type,
        fields={k: v for k, v in data.items() if k != "type"},
    )


__all__ = [
    "ControlProtocolError",
    "TransportClosedError",
    "InboundKind",
    "InboundText",
    "classify_text",
    "echo_text",
    "encode_control",
    "ServerMessage",
    "decode_server_text",
    "MSG_DONE",
    "MSG_ERROR",
    "MSG_NO_AUDIO",
    "MSG_REPLY",
    "MSG_TRANSCRIPT",
]
