"""
=============================================================================
METRICS SERVER - MAIN SERVER MODULE
=============================================================================

Serves the latest metrics payload over HTTP for scrape-based collection.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      One serving thread                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept() ──► Connection                                           │
    │                   │                                                  │
    │                   ▼                                                  │
    │              read_request()   ── garbage / reset ──► log, 400, next │
    │                   │                                                  │
    │                   ▼                                                  │
    │   RECEIVED ──► method == GET?  ── no ──► 405                        │
    │                   │                                                  │
    │                   ▼                                                  │
    │              target == /metrics? ── no ──► 404                      │
    │                   │                                                  │
    │                   ▼                                                  │
    │              buffer.snapshot()   (lock held only here)              │
    │                   │                                                  │
    │                   ▼                                                  │
    │              sendall()  ── fails ──► log, next                      │
    │                   │                                                  │
    │                   ▼                                                  │
    │              close, accept next                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Requests are handled strictly one at a time. Scrapes are small and
periodic, so a single thread is plenty; the catch is that a client that
stalls mid-request stalls everyone behind it unless a timeout is set in
ServerConfig.

=============================================================================
USAGE
=============================================================================

    server = MetricsServer()
    loop = server.serve("127.0.0.1:9100")   # raises if it cannot bind

    while True:
        server.update(render_metrics())     # from any thread
        time.sleep(5)

=============================================================================
"""

import dataclasses
import logging
import threading
from typing import Optional, Tuple

from .buffer import SharedBuffer, PoisonedLockError
from .config import ServerConfig
from .core import Listener, Connection
from .http import (
    Request,
    RequestParser,
    HTTPParseError,
    HTTPResponse,
    HTTPStatus,
    from_data,
    empty,
)


logger = logging.getLogger(__name__)


class ServingLoop:
    """
    A bound listener plus the background thread answering its requests.

    Created and started by MetricsServer.serve(). The thread is a daemon:
    without an explicit shutdown() it runs until the process exits.
    """

    def __init__(self, buffer: SharedBuffer, config: ServerConfig):
        self.config = config
        self._buffer = buffer
        self._listener = Listener(config)
        self._parser = RequestParser(max_request_size=config.max_request_size)
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        """The actual bound (host, port)."""
        return self._listener.address

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ServingLoop":
        """
        Bind synchronously, then start the serving thread.

        Raises:
            ValueError: If the configured address is malformed.
            OSError: If the address cannot be bound.
        """
        self._listener.bind()

        host, port = self.address
        self._thread = threading.Thread(
            target=self._listener.serve_forever,
            args=(self._handle_connection,),
            name=f"metrics-server-{port}",
            daemon=True,
        )
        self._thread.start()

        logger.info(f"Serving metrics at http://{host}:{port}{self.config.metrics_path}")
        return self

    def shutdown(self):
        """Stop accepting. The request in flight, if any, is finished first."""
        self._listener.shutdown()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the serving thread to exit.

        Returns:
            True if it exited, False on timeout.
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def handle(self, request: Request) -> HTTPResponse:
        """
        Decide the response for one request.

        Raises:
            PoisonedLockError: If the buffer can no longer be read.
        """
        if request.method != "GET":
            return empty(HTTPStatus.METHOD_NOT_ALLOWED)

        if request.target != self.config.metrics_path:
            return empty(HTTPStatus.NOT_FOUND)

        # The lock is released by the time we have the bytes; the socket
        # write happens afterwards without it.
        return from_data(self._buffer.snapshot())

    def _handle_connection(self, conn: Connection):
        """
        Serve exactly one request on conn, then close it.

        Per-request failures are logged and swallowed so the loop keeps
        going. A poisoned buffer is not: it is re-raised and ends the
        serving thread.
        """
        with conn:
            try:
                raw_request = conn.read_request()
                if raw_request is None:
                    logger.debug(f"[{conn.id}] Client closed before sending a request")
                    return

                request = self._parser.parse(raw_request, conn.address)
                response = self.handle(request)

            except HTTPParseError as e:
                logger.error(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                self._send(conn, empty(HTTPStatus(e.status_code)))
                return

            except TimeoutError as e:
                logger.error(f"[{conn.id}] {e} from {conn.client_ip}")
                self._send(conn, empty(HTTPStatus.REQUEST_TIMEOUT))
                return

            except PoisonedLockError:
                logger.critical(f"[{conn.id}] Metrics buffer is poisoned, stopping server")
                self._send(conn, empty(HTTPStatus.INTERNAL_SERVER_ERROR))
                raise

            except OSError as e:
                logger.error(f"[{conn.id}] Receive error from {conn.client_ip}: {e}")
                return

            if response.status.is_error:
                logger.info(
                    f"[{conn.id}] {request.method} {request.target} -> "
                    f"{int(response.status)} {response.status.phrase}"
                )
            else:
                logger.debug(
                    f"[{conn.id}] {request.method} {request.target} -> "
                    f"{int(response.status)} ({len(response.body)} bytes, {request.user_agent or '-'})"
                )

            self._send(conn, response)

    def _send(self, conn: Connection, response: HTTPResponse) -> bool:
        # Connection.send_response logs the failure; nothing to retry
        return conn.send_response(response.to_bytes(self.config.server_name))


class MetricsServer:
    """
    Holds the latest metrics payload and serves it over HTTP.

    =========================================================================
    THREAD SAFETY
    =========================================================================

    update() may be called from any number of threads while any number
    of serving loops read the same buffer. Readers always get a whole
    payload, either the one before an update or the one after it.

    Two MetricsServer objects built on the same SharedBuffer serve the
    same data:

        shared = SharedBuffer()
        public = MetricsServer(buffer=shared)
        internal = MetricsServer(buffer=shared)

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        buffer: Optional[SharedBuffer] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._buffer = buffer if buffer is not None else SharedBuffer()

    @property
    def buffer(self) -> SharedBuffer:
        return self._buffer

    def update(self, data) -> int:
        """
        Replace the served payload and return the number of bytes stored.

        Safe to call concurrently from multiple threads.

        Example:
            server = MetricsServer()
            server.update([1, 2, 3, 4])   # -> 4
        """
        return self._buffer.update(data)

    def snapshot(self) -> bytes:
        """The payload a scrape would get right now."""
        return self._buffer.snapshot()

    def serve(self, address: Optional[str] = None) -> ServingLoop:
        """
        Start serving on a background thread and return immediately.

        Binding happens before this returns, so an unusable address is
        reported here, not lost in the background thread.

        Args:
            address: "host:port" to bind. Defaults to config.address.
                     Port 0 picks a free port; see ServingLoop.address.

        Returns:
            The running ServingLoop.

        Raises:
            ValueError: If address is malformed.
            OSError: If address cannot be bound (in use, permission
                     denied, unknown host).
        """
        config = self.config
        if address is not None:
            config = dataclasses.replace(self.config, address=address)
            config.validate()

        return ServingLoop(self._buffer, config).start()
