"""
Outbound transport contract.

The gateway and the paced delivery scheduler only need to push binary
and text frames and to observe whether the connection is still open.
Concrete WebSocket wiring lives in server.transport.
"""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    """Send side of one client connection."""

    @property
    def is_open(self) -> bool:
        """False once the connection is closed or errored."""

    async def send_bytes(self, data: bytes) -> None:
        """Send one binary frame. Raises TransportClosedError when closed."""

    async def send_text(self, text: str) -> None:
        """Send one text frame. Raises TransportClosedError when closed."""

    def mark_closed(self) -> None:
        """Record that the peer is gone; is_open is False afterwards."""
