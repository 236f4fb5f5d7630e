"""
Unit tests for the per-connection request/response cycle.

Each test drives a ConnectionHandler over a socketpair: the test plays the
client on one end, the handler owns the other.
"""

import json
import logging
import socket

import pytest

from simplehttpd.core import Connection, ConnectionState
from simplehttpd.http import Response, text_response
from simplehttpd.server import ConnectionHandler


def exchange(handler, raw: bytes, **kwargs) -> bytes:
    """Send raw as the client, run one handler pass, return what came back."""
    client, server = socket.socketpair()
    client.settimeout(5.0)
    try:
        client.sendall(raw)
        client.shutdown(socket.SHUT_WR)

        conn = Connection(server, ("127.0.0.1", 40000))
        ConnectionHandler(handler, **kwargs).handle(conn)
        assert conn.is_closed

        chunks = []
        while True:
            chunk = client.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)
    finally:
        client.close()
        server.close()


def ok_handler(request):
    return text_response(f"{request.method} {request.path}")


class TestConnectionHandler:

    def test_happy_path(self):
        wire = exchange(ok_handler, b"GET /hello HTTP/1.1\r\nHost: x\r\n\r\n")

        assert wire == (
            b"HTTP/1.1 200 OK\r\n"
            b"Connection: close\r\n"
            b"Content-Type: text/plain; charset=UTF-8\r\n"
            b"\r\n"
            b"GET /hello"
        )

    def test_handler_sees_client_address(self):
        seen = {}

        def handler(request):
            seen["address"] = request.client_address
            return Response()

        exchange(handler, b"GET / HTTP/1.1\r\n\r\n")

        assert seen["address"] == ("127.0.0.1", 40000)

    def test_handler_exception_becomes_500(self):
        def handler(request):
            raise RuntimeError("boom")

        wire = exchange(handler, b"GET / HTTP/1.1\r\n\r\n")

        head, _, body = wire.partition(b"\r\n\r\n")
        assert head == (
            b"HTTP/1.1 500 Internal Server Error\r\n"
            b"Connection: close\r\n"
            b"Content-Type: text/plain"
        )
        assert body.startswith(b"Traceback (most recent call last):")
        assert b"RuntimeError: boom" in body

    def test_non_response_return_becomes_500(self):
        wire = exchange(lambda request: "not a response", b"GET / HTTP/1.1\r\n\r\n")

        assert wire.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert b"TypeError" in wire

    def test_headers_broken_after_construction_become_500(self):
        def handler(request):
            response = Response()
            response.headers["X-Evil"] = "a\r\nInjected: yes"
            return response

        wire = exchange(handler, b"GET / HTTP/1.1\r\n\r\n")

        assert wire.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert b"\r\nInjected: yes\r\n" not in wire

    @pytest.mark.parametrize("body", [None, 42])
    def test_unsupported_body_becomes_500(self, body):
        wire = exchange(lambda request: Response(body=body), b"GET / HTTP/1.1\r\n\r\n")

        assert wire.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert b"Unsupported body type" in wire

    def test_body_replaced_after_construction_becomes_500(self):
        def handler(request):
            response = text_response("fine")
            response.body = None
            return response

        wire = exchange(handler, b"GET / HTTP/1.1\r\n\r\n")

        assert wire.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert b"200 OK" not in wire

    def test_malformed_request_line_becomes_500(self):
        called = []

        def handler(request):
            called.append(request)
            return Response()

        wire = exchange(handler, b"NONSENSE\r\n\r\n")

        assert not called
        assert wire.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert b"ParseError" in wire

    def test_client_sending_nothing_gets_nothing(self):
        called = []

        def handler(request):
            called.append(request)
            return Response()

        assert exchange(handler, b"") == b""
        assert not called

    def test_body_passed_to_handler(self):
        def handler(request):
            return Response(body=request.body.read()[::-1])

        wire = exchange(handler, b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")

        assert wire.endswith(b"\r\n\r\nolleh")

    def test_unread_body_does_not_break_response(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 20000\r\n\r\n" + b"x" * 20000

        wire = exchange(lambda request: text_response("ignored body"), raw)

        assert wire.endswith(b"ignored body")

    def test_body_failure_mid_stream_truncates(self, caplog):
        def failing_body():
            yield b"partial"
            raise RuntimeError("source died")

        with caplog.at_level(logging.ERROR, logger="simplehttpd.server"):
            wire = exchange(lambda request: Response(body=failing_body()), b"GET / HTTP/1.1\r\n\r\n")

        assert wire.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"500" not in wire
        assert "mid-stream" in caplog.text

    def test_state_ends_closed_after_disconnect(self):
        client, server = socket.socketpair()
        try:
            client.close()
            conn = Connection(server, ("127.0.0.1", 1))
            ConnectionHandler(ok_handler).handle(conn)
            assert conn.state == ConnectionState.CLOSED
        finally:
            server.close()


class TestAccessLog:

    def test_text_format(self, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(ok_handler, b"GET /logged HTTP/1.1\r\n\r\n")

        records = [r for r in caplog.records if r.name == "simplehttpd.access"]
        assert len(records) == 1
        assert '"GET /logged HTTP/1.1" 200' in records[0].getMessage()

    def test_json_format(self, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(ok_handler, b"GET /logged HTTP/1.1\r\n\r\n", log_format="json")

        records = [r for r in caplog.records if r.name == "simplehttpd.access"]
        entry = json.loads(records[0].getMessage())
        assert entry["method"] == "GET"
        assert entry["path"] == "/logged"
        assert entry["status"] == 200
        assert entry["client_ip"] == "127.0.0.1"

    @pytest.mark.parametrize("raw", [b"", b"GET / HTTP/1.1\r\n\r\n"])
    def test_nothing_logged_when_disabled(self, caplog, raw):
        with caplog.at_level(logging.WARNING, logger="simplehttpd.access"):
            exchange(ok_handler, raw)

        assert not [r for r in caplog.records if r.name == "simplehttpd.access"]
