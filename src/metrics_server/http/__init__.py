"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Just enough HTTP/1.1 to answer a scraper:

    Raw bytes ──► RequestParser ──► Request ──► (server decides)
                                                      │
    Raw bytes ◄── HTTPResponse.to_bytes() ◄───────────┘

=============================================================================
"""

from .request import Request, RequestParser, HTTPParseError
from .response import HTTPResponse, format_http_date, from_data, empty
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "Request",
    "RequestParser",
    "HTTPParseError",

    # Responses
    "HTTPResponse",
    "format_http_date",
    "from_data",
    "empty",

    # Status codes
    "HTTPStatus",
]
