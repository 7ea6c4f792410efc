"""
=============================================================================
METRICS_SERVER - Serve a metrics snapshot over HTTP
=============================================================================

A tiny HTTP server that exposes the latest metrics payload of a process
for scrape-based collection (Prometheus and friends).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   producer thread(s)                serving thread                  │
    │   ──────────────────                ──────────────                  │
    │   server.update(payload) ──┐    ┌── GET /metrics → 200 + payload    │
    │                            ▼    │   GET /other   → 404              │
    │                      SharedBuffer   POST ...     → 405              │
    │                      (one lock) ────┘                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The payload is opaque bytes. Rendering metrics is the caller's job.

QUICK START:
────────────

    from metrics_server import MetricsServer

    server = MetricsServer()
    server.serve("127.0.0.1:9100")         # returns immediately
    server.update(b"up 1\\n")

    $ curl http://127.0.0.1:9100/metrics
    up 1

=============================================================================
"""

__version__ = "1.0.0"

from .server import MetricsServer, ServingLoop
from .buffer import SharedBuffer, PoisonedLockError
from .config import ServerConfig, parse_address

__all__ = [
    "MetricsServer",
    "ServingLoop",
    "SharedBuffer",
    "PoisonedLockError",
    "ServerConfig",
    "parse_address",
    "__version__",
]
