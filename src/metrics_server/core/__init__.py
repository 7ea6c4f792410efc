"""
=============================================================================
CORE NETWORKING
=============================================================================

    Listener     Listening socket: bind, listen, accept loop
    Connection   One accepted client socket: read head, send, close

=============================================================================
"""

from .listener import Listener
from .connection import Connection, ConnectionState

__all__ = [
    "Listener",         # Listening TCP socket and accept loop
    "Connection",       # Wrapper for client socket
    "ConnectionState",  # Enum for connection lifecycle states
]
