"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the metrics server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m metrics_server --address 0.0.0.0:9100           │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── METRICS_ADDRESS=0.0.0.0:9100 python -m metrics_server     │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ADDRESS FORMAT
=============================================================================

The listen address is a single "host:port" string, the same shape a
scrape target is written in:

    127.0.0.1:9100      IPv4 literal
    localhost:9100      Hostname (resolved at bind time)
    [::1]:9100          IPv6 literal, brackets required
    :9100               Empty host = all interfaces
    127.0.0.1:0         Port 0 = let the OS pick an ephemeral port

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a "host:port" string into its parts.

    Args:
        address: Listen address, e.g. "127.0.0.1:9100" or "[::1]:9100".

    Returns:
        Tuple of (host, port). Brackets are stripped from IPv6 hosts.

    Raises:
        ValueError: If the string has no port or the port is not a
                    number in 0-65535.
    """
    if not isinstance(address, str) or ":" not in address:
        raise ValueError(f"Invalid address {address!r}: expected host:port")

    host, _, port_str = address.rpartition(":")

    if host.startswith("["):
        if not host.endswith("]"):
            raise ValueError(f"Invalid address {address!r}: unterminated IPv6 bracket")
        host = host[1:-1]
    elif ":" in host:
        # Bare IPv6 like "::1:9100" is ambiguous
        raise ValueError(f"Invalid address {address!r}: IPv6 hosts must be bracketed")

    if not port_str.isdigit():
        raise ValueError(f"Invalid address {address!r}: port must be a number")

    port = int(port_str)
    if not 0 <= port < 65536:
        raise ValueError(f"Invalid address {address!r}: port must be 0-65535")

    return host, port


@dataclass
class ServerConfig:
    """
    Configuration for the metrics server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - address, backlog, buffer_size, timeout, accept_poll_interval

    HTTP SETTINGS
    - metrics_path, max_request_size, server_name

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    address: str = "127.0.0.1:9100"
    """
    The "host:port" to bind to.
    - "127.0.0.1:9100" - Localhost only (development)
    - "0.0.0.0:9100" - All interfaces (containers, real scrapers)
    """

    backlog: int = 128
    """
    Maximum number of queued connections.
    Connections beyond this are refused by the OS, which is the only
    backpressure the server applies.
    """

    buffer_size: int = 8192
    """Size of each recv() call in bytes."""

    timeout: Optional[float] = None
    """
    Per-connection read/write timeout in seconds.
    None = blocking. A stalled client then stalls the accept loop until
    it goes away; set a value to bound that.
    """

    accept_poll_interval: float = 0.5
    """
    How often the accept loop wakes up to check for shutdown.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    metrics_path: str = "/metrics"
    """
    The only request-target that is served. Compared verbatim, so
    "/metrics?x=1" does not match.
    """

    max_request_size: int = 64 * 1024  # 64 KB
    """
    Maximum size of a request head. Scrapers send a few hundred bytes;
    anything bigger is rejected with 413.
    """

    server_name: str = "metrics-server/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        METRICS_ADDRESS     Listen address (default: 127.0.0.1:9100)
        METRICS_PATH        Served path (default: /metrics)
        METRICS_TIMEOUT     Connection timeout in seconds (default: none)
        METRICS_LOG_LEVEL   Logging level (default: INFO)

        =====================================================================
        """
        timeout = os.getenv("METRICS_TIMEOUT")
        return cls(
            address=os.getenv("METRICS_ADDRESS", "127.0.0.1:9100"),
            metrics_path=os.getenv("METRICS_PATH", "/metrics"),
            timeout=float(timeout) if timeout else None,
            log_level=os.getenv("METRICS_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a typo in the address fails the process
        immediately rather than on the first scrape.

        Raises:
            ValueError: On the first invalid value found.
        """
        parse_address(self.address)

        if not self.metrics_path.startswith("/"):
            raise ValueError(f"metrics_path must start with '/': {self.metrics_path!r}")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if self.max_request_size < self.buffer_size:
            raise ValueError("max_request_size must be >= buffer_size")
