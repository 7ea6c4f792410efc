"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the few operations the serving
loop needs: read a request head, write a response, close cleanly.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

A request head may arrive in any number of recv() chunks:

    First recv():  "GET /met"
    Second recv(): "rics HTTP/1.1\r\nHost: ..."
    Third recv():  "...\r\n\r\n"

So we buffer until the blank line (\r\n\r\n, or \n\n from clients that
send bare LF) shows up. We never read a
body: nothing we serve depends on one. Whatever the client sent beyond
the head is drained and discarded at close.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► WRITING ──────► CLOSING ──────► CLOSED
     │             │                               ▲
     └─────────────┴───────────────────────────────┘
              (client gone / error)

Exactly one request is served per connection; every response says
"Connection: close".

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..http.request import HTTPParseError, find_head_end


logger = logging.getLogger(__name__)


# Total time close() spends discarding unread client data
DRAIN_TIMEOUT = 0.5


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"            # Just accepted
    READING = "reading"    # Reading the request head
    WRITING = "writing"    # Sending the response
    CLOSING = "closing"    # Shutdown sequence in progress
    CLOSED = "closed"      # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier for log lines.
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    # Configuration (passed from ServerConfig)
    buffer_size: int = 8192
    timeout: Optional[float] = None          # None = blocking
    max_request_size: int = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        # settimeout(None) puts the socket in blocking mode
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one request head from the socket.

        Returns:
            The head bytes including the terminating blank line, or None
            if the client closed the connection before sending a full head.

        Raises:
            TimeoutError: If a timeout is configured and the client is too slow.
            HTTPParseError: If the head grows past max_request_size (413).
        """
        self.state = ConnectionState.READING

        try:
            while find_head_end(self._buffer) == -1:
                chunk = self._recv()
                if not chunk:
                    if self._buffer:
                        logger.debug(
                            f"[{self.id}] Client closed after {len(self._buffer)} bytes of partial head"
                        )
                    return None

                self._buffer += chunk

                if len(self._buffer) > self.max_request_size:
                    raise HTTPParseError(
                        f"Request head too large: {len(self._buffer)} bytes",
                        status_code=413
                    )
        except socket.timeout:
            raise TimeoutError("Request read timeout")

        return self._buffer[:find_head_end(self._buffer)]

    def _recv(self) -> bytes:
        """
        Receive a chunk, mapping an abrupt disconnect to b"".
        """
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, ConnectionAbortedError) as e:
            logger.warning(f"[{self.id}] Connection reset while reading: {e}")
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes to the client.

        Uses sendall() so a large payload is not cut short by a full
        kernel send buffer.

        Returns:
            True if send succeeded, False if the client went away.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except (socket.timeout, OSError) as e:
            logger.error(f"[{self.id}] Failed to send response to {self.client_ip}: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN, the client sees end of response.
        2. Drain: read and discard what the client still sends (e.g. a
           request body) for at most DRAIN_TIMEOUT seconds in total.
           Closing with unread data makes the kernel send RST, which can
           destroy a response the client has not read yet.
        3. close(): release the file descriptor.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        deadline = time.monotonic() + DRAIN_TIMEOUT
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(self.buffer_size):
                    break
        except OSError:
            pass  # socket.timeout is an OSError too

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
