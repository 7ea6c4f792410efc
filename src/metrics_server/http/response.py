"""
=============================================================================
HTTP RESPONSE SERIALIZATION
=============================================================================

Builds the bytes of an HTTP/1.1 response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                   ← Status line              │
    │    Content-Length: 27\r\n                ← Always set               │
    │    Date: Wed, 01 Jan 2026 12:00:00 GMT\r\n                          │
    │    Server: metrics-server/1.0\r\n                                   │
    │    Connection: close\r\n                 ← One request per conn     │
    │    \r\n                                  ← Separator                │
    │    requests_total 42\n ...               ← Body (opaque bytes)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No Content-Type is ever added. The payload is opaque to this server and
the producer knows its format better than we do; scrapers fall back to
the text exposition format when the header is missing.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Attributes:
        status:  Status code.
        headers: Extra headers. Content-Length, Date, Server and
                 Connection are filled in by to_bytes() if missing.
        body:    Response body bytes.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def to_bytes(self, server_name: str = "metrics-server/1.0") -> bytes:
        """
        Serialize the response for socket.sendall().

        Args:
            server_name: Value for the Server header.

        Returns:
            Status line, headers, blank line and body as one bytes object.
        """
        response_headers = dict(self.headers)

        # Content-Length tells the client where the body ends
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)
        response_headers.setdefault("Connection", "close")

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT and use English day/month names
    regardless of locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def from_data(body: bytes) -> HTTPResponse:
    """200 OK carrying body as-is."""
    return HTTPResponse(status=HTTPStatus.OK, body=body)


def empty(status: HTTPStatus) -> HTTPResponse:
    """A response with the given status and no body."""
    return HTTPResponse(status=status)
