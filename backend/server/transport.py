"""
Starlette/FastAPI WebSocket adapter for the Transport contract.

Translates the framework's disconnect signals into TransportClosedError
and remembers the closed state so senders can stop early.
"""

from __future__ import annotations

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from protocol.control import TransportClosedError


class WebSocketTransport:
    """Transport backed by an accepted FastAPI WebSocket."""

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return (
            self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        """Called by the receive loop once the client disconnected."""
        self._closed = True

    async def send_bytes(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportClosedError("send_bytes on closed websocket")
        try:
            await self._ws.send_bytes(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed = True
            raise TransportClosedError(f"send_bytes failed: {exc!r}") from exc

    async def send_text(self, text: str) -> None:
        if not self.is_open:
            raise TransportClosedError("send_text on closed websocket")
        try:
            await self._ws.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed = True
            raise TransportClosedError(f"send_text failed: {exc!r}") from exc
