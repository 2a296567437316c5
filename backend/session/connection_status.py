"""
Connection status tracking for login sessions.

Connection lifecycle is tracked separately from the login state machine.
connection_status: DOWN | UP

This is pure data owned by LoginGateway, not by coordinator state.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    WebSocket connection status.

    Separate from and independent of SessionState: a session may be
    Authenticated with the connection DOWN after disconnect.
    """
    DOWN = "DOWN"  # Not connected / disconnected
    UP = "UP"      # Active WebSocket connection
