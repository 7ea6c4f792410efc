"""
=============================================================================
LOW-LEVEL TCP LISTENER
=============================================================================

Owns the listening socket: resolve, bind, listen, and an interruptible
accept loop.

=============================================================================
BIND EARLY, ACCEPT LATER
=============================================================================

Binding and accepting are split on purpose:

    caller thread                        serving thread
    ─────────────                        ──────────────
    Listener.bind()
        ├── getaddrinfo()   ← bad host? OSError here
        ├── bind()          ← port in use? OSError here
        └── listen()
    thread.start() ─────────────────────► Listener.serve_forever()
    (returns)                                 └── accept() loop

Every startup failure is raised in the caller's thread, before anyone
believes the server is up. Once bind() returns, connections are already
queued by the kernel even if the serving thread has not started yet.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Rebind immediately after a restart instead of failing with
    "Address already in use" while old connections sit in TIME_WAIT.
    Not set on Windows, where it means something much looser.

Accept timeout:
    accept() wakes up every accept_poll_interval seconds so the loop can
    notice shutdown() without closing the socket from another thread.

=============================================================================
"""

import os
import socket
import logging
from typing import Optional, Callable, Tuple

from ..config import ServerConfig, parse_address
from .connection import Connection


logger = logging.getLogger(__name__)


class Listener:
    """
    Low-level TCP listener.

    Usage:
        listener = Listener(config)
        listener.bind()                        # raises on failure
        listener.serve_forever(handle_conn)    # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None
        self._running = False

    @property
    def address(self) -> Tuple[str, int]:
        """
        The actual bound (host, port). With port 0 this is the port the
        OS picked.
        """
        if self._bound_address is None:
            raise RuntimeError("Listener is not bound")
        return self._bound_address

    def _resolve(self) -> Tuple[int, tuple]:
        """
        Resolve the configured address to (family, sockaddr).

        Raises:
            ValueError: If the address string is malformed.
            OSError: If the host cannot be resolved.
        """
        host, port = parse_address(self.config.address)

        infos = socket.getaddrinfo(
            host or None,
            port,
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
        # Prefer IPv4 for an empty host so ":9100" means 0.0.0.0:9100
        infos.sort(key=lambda info: info[0] != socket.AF_INET)
        family, _, _, _, sockaddr = infos[0]
        return family, sockaddr

    def bind(self):
        """
        Create, bind and listen.

        Raises:
            ValueError: If the address string is malformed.
            OSError: If the address cannot be resolved or bound.
        """
        family, sockaddr = self._resolve()

        sock = socket.socket(family, socket.SOCK_STREAM)

        try:
            if os.name != "nt":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.address}: {e}")
            raise

        sock.settimeout(self.config.accept_poll_interval)

        self._socket = sock
        self._bound_address = sock.getsockname()[:2]
        self._running = True

        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections and hand each one to connection_handler, one at
        a time, until shutdown() is called.

        The handler runs on this thread. The next connection is not
        accepted until it returns.

        Exceptions raised by the handler end the loop and propagate.
        """
        if self._socket is None:
            raise RuntimeError("Listener.bind() must be called first")

        try:
            while self._running:
                try:
                    client_socket, client_address = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._running or self._socket.fileno() == -1:
                        break
                    logger.error(f"Accept error: {e}")
                    continue

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    max_request_size=self.config.max_request_size,
                )

                connection_handler(conn)
        finally:
            self._cleanup()

    def shutdown(self):
        """
        Ask the accept loop to stop. Safe to call more than once and from
        any thread; takes effect within accept_poll_interval.
        """
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

    def _cleanup(self):
        self._running = False

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass

        logger.info("Listener stopped")
