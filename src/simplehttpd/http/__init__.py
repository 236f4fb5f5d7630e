"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

Everything that knows what HTTP looks like on the wire. Nothing in here
touches sockets directly; every component works on binary streams, which
makes each one testable with io.BytesIO.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   line_reader.py   CRLF line framing (lenient or strict)            │
    │         ▲                                                            │
    │   request.py       RequestParser → Request                          │
    │         │          (RequestLine, Headers, QueryParameters)          │
    │         ▼                                                            │
    │   body.py          BodyStream, capped at Content-Length             │
    │                                                                      │
    │   response.py      Response, ResponseSerializer, factories          │
    │                                                                      │
    │   errors.py        ParseError, ClientDisconnected                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .errors import ParseError, ClientDisconnected
from .line_reader import LineReader
from .body import BodyStream
from .request import (
    Request,
    RequestLine,
    RequestParser,
    Headers,
    QueryParameters,
    MultiValueMap,
    parse_request,
    parse_query_string,
    parse_content_length,
)
from .response import (
    Response,
    ResponseSerializer,
    error_response,
    text_response,
    html_response,
    json_response,
    css_response,
    js_response,
)

__all__ = [
    # Errors
    "ParseError",
    "ClientDisconnected",

    # Request side
    "LineReader",
    "BodyStream",
    "Request",
    "RequestLine",
    "RequestParser",
    "Headers",
    "QueryParameters",
    "MultiValueMap",
    "parse_request",
    "parse_query_string",
    "parse_content_length",

    # Response side
    "Response",
    "ResponseSerializer",
    "error_response",
    "text_response",
    "html_response",
    "json_response",
    "css_response",
    "js_response",
]
