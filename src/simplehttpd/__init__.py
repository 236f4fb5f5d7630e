"""
=============================================================================
SIMPLEHTTPD - Minimal Multi-threaded HTTP/1.1 Server
=============================================================================

A small HTTP server core on raw Python sockets. It accepts a connection,
parses exactly one request, hands it to YOUR function, writes the
response back and closes the connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   client ──► accept ──► worker ──► parse ──► handler(request)       │
    │                                                  │                   │
    │   client ◄── close ◄──────── serialize ◄─── Response                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

What it deliberately does NOT do: keep-alive, chunked encoding,
pipelining, TLS, HTTP/2, compression, routing. The handler function is
the single extension point; routing or content negotiation belong there.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    simplehttpd/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m simplehttpd)
    ├── server.py            # HTTPServer, ConnectionHandler
    ├── config.py            # ServerConfig dataclass
    ├── core/
    │   ├── socket_server.py # Listening socket + accept loop
    │   ├── connection.py    # Buffered client connection
    │   └── thread_pool.py   # Worker threads
    └── http/
        ├── line_reader.py   # CRLF line framing
        ├── request.py       # Request parsing
        ├── body.py          # Content-Length bounded body stream
        ├── response.py      # Response + serializer + factories
        └── errors.py        # ParseError, ClientDisconnected

=============================================================================
QUICK START
=============================================================================

    from simplehttpd import HTTPServer, ServerConfig, Response, json_response

    def handler(request):
        if request.method == "POST":
            data = request.body.read()
            return Response("HTTP/1.1 200 OK", {"Content-Type": "text/plain"}, data)
        return json_response({"path": request.path})

    HTTPServer(handler, ServerConfig(port=8080)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, ConnectionHandler, create_server
from .config import ServerConfig
from .core import BindError
from .http import (
    ParseError,
    ClientDisconnected,
    Request,
    RequestLine,
    Headers,
    QueryParameters,
    BodyStream,
    Response,
    error_response,
    text_response,
    html_response,
    json_response,
    css_response,
    js_response,
)

__all__ = [
    "HTTPServer",
    "ConnectionHandler",
    "create_server",
    "ServerConfig",
    "BindError",
    "ParseError",
    "ClientDisconnected",
    "Request",
    "RequestLine",
    "Headers",
    "QueryParameters",
    "BodyStream",
    "Response",
    "error_response",
    "text_response",
    "html_response",
    "json_response",
    "css_response",
    "js_response",
    "__version__",
]
