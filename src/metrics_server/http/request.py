"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes of a request head into a Request value.

The metrics server only ever looks at two things in a request: the
METHOD and the request-TARGET. Everything else is parsed leniently for
logging and then ignored.

    GET /metrics HTTP/1.1\r\n          ← Request line (strict)
    Host: localhost:9100\r\n           ← Headers (lenient)
    User-Agent: Prometheus/2.45.0\r\n
    Accept: text/plain\r\n
    \r\n                               ← End of head
    (body, if any, is never read)

=============================================================================
WHY THE RAW TARGET?
=============================================================================

The target is kept exactly as the client sent it. No URL-decoding, no
query splitting, no normalization. "/metrics" matches; "/metrics?x=1",
"/metrics/" and "/%6Detrics" do not. A scrape config that points at the
wrong URL gets a clear 404 instead of a silently-accepted near match.

=============================================================================
LINE ENDINGS
=============================================================================

HTTP says CRLF, but RFC 7230 §3.5 lets a recipient accept a bare LF as
a line terminator. Hand-typed requests (nc, telnet, printf) often use
LF only, so both "\\r\\n\\r\\n" and "\\n\\n" end the head.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Tuple


# Blank line ending the head: CRLF CRLF, LF LF, or a mix of the two
HEAD_END_PATTERN = re.compile(rb"\r?\n\r?\n")
LINE_BREAK_PATTERN = re.compile(r"\r?\n")


def find_head_end(data: bytes) -> int:
    """
    Find where the request head ends.

    Returns:
        Index just past the terminating blank line, or -1 if the head is
        not complete yet.
    """
    match = HEAD_END_PATTERN.search(data)
    return match.end() if match else -1


class HTTPParseError(Exception):
    """
    Raised when a request head cannot be parsed.

    Carries the HTTP status code to answer with:

        400 Bad Request                 - Malformed request syntax
        413 Payload Too Large           - Head exceeds size limit
        505 HTTP Version Not Supported  - Not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Request:
    """
    A parsed HTTP request head.

    Attributes:
        method:         Request method exactly as sent ("GET", "POST", ...)
        target:         Request-target exactly as sent ("/metrics?x=1")
        version:        "HTTP/1.0" or "HTTP/1.1"
        headers:        Header name (lowercase) → value
        client_address: (ip, port) of the client, for logging
    """

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)

    @property
    def user_agent(self) -> str:
        """The User-Agent header, or empty string."""
        return self.headers.get("user-agent", "")


class RequestParser:
    """
    Parses raw request-head bytes into Request objects.

    ==========================================================================
    PARSING STEPS
    ==========================================================================

        Raw head bytes
              │
              ▼
        1. Size check            too large?      → 413
        2. Find blank line       missing?        → 400
        3. Request line          malformed?      → 400
                                 bad version?    → 505
        4. Headers               malformed lines are skipped
              │
              ▼
        Request dataclass

    ==========================================================================
    """

    # RFC 7230 token characters. Any token is a syntactically valid method;
    # deciding which ones we serve is the server's job, not the parser's.
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) ([^ ]+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 64 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0)
    ) -> Request:
        """
        Parse a raw request head into a Request.

        Args:
            data: Request bytes, up to and including the blank line.
                  Anything after the blank line is ignored.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed Request.

        Raises:
            HTTPParseError: If the head is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        match = HEAD_END_PATTERN.search(data)
        if match is None:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Request heads are ASCII; latin-1 maps every byte so decoding
        # can't fail and the regex below does the real validation.
        head = data[:match.start()].decode("latin-1")
        lines = LINE_BREAK_PATTERN.split(head)

        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return Request(
            method=method,
            target=target,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Raises:
            HTTPParseError: If the line is malformed or the version unsupported.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line[:100]!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Malformed lines are skipped and repeated headers are joined
        with ", ".
        """
        headers: Dict[str, str] = {}

        for line in lines:
            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers
