"""
Per-connection stream session.

- Owns the ordered inbound audio chunks (append-only until finalize)
- Owns the finalized flag and the readiness flag
- Owned and mutated by SessionGateway only
- NOT a state machine
- Contains no transport or collaborator logic
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from session.connection_status import ConnectionStatus


@dataclass
class StreamSession:
    """Mutable container for a single device connection."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)
    connection_status: ConnectionStatus = ConnectionStatus.CONNECTING

    # ------------------------------------------------------------------
    # Handshake (set by the receive loop, consumed by paced delivery)
    # ------------------------------------------------------------------

    ready: asyncio.Event = field(default_factory=asyncio.Event)

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    finalized: bool = False
    finalize_reason: str | None = None
    received_chunks: int = 0
    received_bytes: int = 0
    rejected_chunks: int = 0

    def __post_init__(self) -> None:
        self._chunks: list[bytes] = []

    @property
    def buffered_bytes(self) -> int:
        """Bytes accumulated and not yet finalized."""
        return sum(len(c) for c in self._chunks)

    def append(self, chunk: bytes) -> bool:
        """
        Append one inbound binary chunk.

        Returns:
            False (and stores nothing) once the session is finalized.
        """
        if self.finalized:
            self.rejected_chunks += 1
            return False

        self._chunks.append(chunk)
        self.received_chunks += 1
        self.received_bytes += len(chunk)
        return True

    def finalize(self, reason: str) -> bytes | None:
        """
        Close the accumulation and hand over the assembled bytes.

        Returns:
            The concatenated payload (possibly b"") on the first call,
            None on every later call. The chunk list is cleared so the
            session cannot be replayed.
        """
        if self.finalized:
            return None

        self.finalized = True
        self.finalize_reason = reason
        payload = b"".join(self._chunks)
        self._chunks.clear()
        return payload

    def mark_ready(self) -> None:
        """Record the client's readiness handshake."""
        self.ready.set()

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
            "finalized": self.finalized,
        }
