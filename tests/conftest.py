"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from metrics_server import MetricsServer, ServerConfig, ServingLoop


@pytest.fixture
def sample_get_request() -> bytes:
    """A scrape as Prometheus sends it."""
    return (
        b"GET /metrics HTTP/1.1\r\n"
        b"Host: localhost:9100\r\n"
        b"User-Agent: Prometheus/2.45.0\r\n"
        b"Accept: text/plain;version=0.0.4;q=0.3,*/*;q=0.2\r\n"
        b"Accept-Encoding: gzip\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """A POST with a body, which the server must not read."""
    body = b'{"name": "John"}'
    return (
        b"POST /metrics HTTP/1.1\r\n"
        b"Host: localhost:9100\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: %d\r\n"
        b"\r\n"
    ) % len(body) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration on an ephemeral port."""
    return ServerConfig(
        address="127.0.0.1:0",  # Let OS pick a free port
        timeout=5.0,
        accept_poll_interval=0.05,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def metrics_server(config: ServerConfig) -> MetricsServer:
    return MetricsServer(config)


@pytest.fixture
def serving_loop(metrics_server: MetricsServer) -> Generator[ServingLoop, None, None]:
    """A running server; stopped again after the test."""
    loop = metrics_server.serve()

    yield loop

    loop.shutdown()
    loop.wait_for_shutdown(timeout=5.0)


@pytest.fixture
def raw_exchange():
    """Send raw bytes, half-close, and read the whole response."""
    def exchange(address, payload: bytes, timeout: float = 5.0) -> bytes:
        with socket.create_connection(address, timeout=timeout) as s:
            s.sendall(payload)
            s.shutdown(socket.SHUT_WR)

            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
            return b"".join(chunks)

    return exchange
