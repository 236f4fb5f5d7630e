"""
pytest configuration and fixtures.
"""

import dataclasses
import socket
import sys
from pathlib import Path
from typing import Callable, Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from simplehttpd import HTTPServer, ServerConfig, Request, Response, text_response


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request with a query string."""
    return (
        b"GET /api/users?page=1&limit=10&page=2 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration on an OS-chosen port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        accept_poll_interval=0.1,
        shutdown_timeout=5.0,
        log_level="WARNING",
    )


def echo_handler(request: Request) -> Response:
    """Echo the body back; report path and first query value for GETs."""
    if request.method == "POST":
        return Response("HTTP/1.1 200 OK", {"Content-Type": "application/octet-stream"}, request.body.read())
    q = request.query_parameters.get("q")
    return text_response(f"path={request.path} q={q}")


def _send_raw(address, data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes, read until the server closes, return everything."""
    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def make_server(config: ServerConfig) -> Generator[Callable[..., HTTPServer], None, None]:
    """
    Factory fixture: start a server around a handler in the background.
    Every server started through it is shut down after the test.
    """
    servers = []

    def _make(handler=echo_handler, **overrides) -> HTTPServer:
        cfg = dataclasses.replace(config, **overrides)
        server = HTTPServer(handler, cfg).start()
        servers.append(server)
        return server

    yield _make

    for server in servers:
        server.shutdown(timeout=5.0)


@pytest.fixture
def running_server(make_server) -> HTTPServer:
    """A started server running echo_handler."""
    return make_server()


@pytest.fixture
def send_raw() -> Callable[..., bytes]:
    """send_raw(address, data) -> full response bytes, read until close."""
    return _send_raw
