"""
Connection status tracking for stream sessions.

Tracked separately from the session's finalize/reply progress:
a reply may still be computing after the connection went DOWN.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Transport lifecycle status of one device connection.
    """
    CONNECTING = "CONNECTING"  # Accepted, session not yet created
    UP = "UP"                  # Active WebSocket connection
    DOWN = "DOWN"              # Closed by either side or errored
