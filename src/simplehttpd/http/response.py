"""
=============================================================================
HTTP RESPONSE & SERIALIZER
=============================================================================

A Response is what the handler function returns. The serializer turns it
into bytes on the connection's output stream.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTP/1.1 200 OK\r\n                  ◄── status line (verbatim)   │
    │   Connection: close\r\n                ◄── always, always first     │
    │   Content-Type: text/plain\r\n         ◄── handler headers, in      │
    │   X-Custom: value\r\n                      insertion order          │
    │   \r\n                                 ◄── end of headers           │
    │   Hello, World!                        ◄── body, byte-for-byte      │
    │                                                                      │
    │   (socket closed)                      ◄── marks the end of body    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
NO AUTOMATIC CONTENT-LENGTH
=============================================================================

Every response closes the connection, so the client can always tell where
the body ends: at EOF. The serializer therefore adds nothing beyond
"Connection: close". If the handler wants Content-Length, it sets it.
That also means bodies can be streamed (a file, a generator) without
knowing their size up front.

=============================================================================
BODY TYPES
=============================================================================

    bytes / bytearray / memoryview    written as-is
    str                               encoded as UTF-8 at construction
    file-like (has .read())           drained in chunks, then closed
    iterable of bytes                 each chunk written in order

=============================================================================
"""

import json
import traceback
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Iterable, Iterator, Optional, Union


DEFAULT_CHUNK_SIZE = 8192

STATUS_OK = "HTTP/1.1 200 OK"
STATUS_INTERNAL_SERVER_ERROR = "HTTP/1.1 500 Internal Server Error"

CRLF = b"\r\n"
CONNECTION_CLOSE = b"Connection: close\r\n"

BodyType = Union[bytes, bytearray, memoryview, str, BinaryIO, Iterable[bytes]]


@dataclass
class Response:
    """
    An HTTP response to be written to the client.

    Attributes:
        status_line: Full status line without CRLF, e.g. "HTTP/1.1 200 OK".
        headers: Header name → value, written in insertion order.
        body: Bytes, text, a binary file-like object or an iterable of
              byte chunks.

    Example:
        Response(
            "HTTP/1.1 201 Created",
            {"Content-Type": "application/json", "Location": "/users/1"},
            b'{"id": 1}',
        )
    """

    status_line: str = STATUS_OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: BodyType = b""

    def __post_init__(self):
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")
        self.validate()

    def validate(self) -> None:
        """
        Check that the response can be written safely.

        The status line and every header name/value must be a str that
        encodes as ISO-8859-1 and contains no CR or LF. A CR LF smuggled
        into a header value would let the handler's input inject extra
        headers (response splitting).

        The body must be bytes-like, file-like or an iterable of chunks;
        anything else would only fail after a 200 head was already sent.

        Raises:
            ValueError: On any violation.
        """
        _check_head_text("status line", self.status_line)
        if not self.status_line:
            raise ValueError("Empty status line")
        for name, value in self.headers.items():
            _check_head_text("header name", name)
            _check_head_text(f"header {name!r}", value)
            if not name or ":" in name:
                raise ValueError(f"Invalid header name: {name!r}")
        if not _is_body(self.body):
            raise ValueError(f"Unsupported body type: {type(self.body).__name__}")

    @property
    def status_code(self) -> Optional[int]:
        """Numeric code from the status line, None if it has none."""
        parts = self.status_line.split(None, 2)
        if len(parts) >= 2 and parts[1].isdigit():
            return int(parts[1])
        return None

    def set_header(self, name: str, value: str) -> "Response":
        """Set a header and return self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self) -> bytes:
        """
        Render the full wire message in memory.

        Drains the body, so streamed bodies can only be rendered once.
        """
        return ResponseSerializer().encode_head(self) + b"".join(iter_body(self.body))


def _check_head_text(what: str, text: Any) -> None:
    if not isinstance(text, str):
        raise ValueError(f"{what} must be str, got {type(text).__name__}")
    if "\r" in text or "\n" in text:
        raise ValueError(f"{what} contains CR or LF: {text!r}")
    try:
        text.encode("iso-8859-1")
    except UnicodeEncodeError:
        raise ValueError(f"{what} is not ISO-8859-1 encodable: {text!r}") from None


def _is_body(body: Any) -> bool:
    return (
        isinstance(body, (bytes, bytearray, memoryview))
        or hasattr(body, "read")
        or isinstance(body, Iterable)
    )


def iter_body(body: BodyType, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield a response body as byte chunks.

    File-like bodies are read until EOF and closed afterwards, even if
    the consumer stops early.
    """
    if isinstance(body, (bytes, bytearray, memoryview)):
        if body:
            yield bytes(body)
        return

    if hasattr(body, "read"):
        try:
            while True:
                chunk = body.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            close = getattr(body, "close", None)
            if close is not None:
                close()
        return

    for chunk in body:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if chunk:
            yield bytes(chunk)


class ResponseSerializer:
    """
    Writes a Response onto a binary output stream.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    serialize() Flow                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   encode_head()     status line, Connection: close, headers, CRLF   │
    │        │            (Latin-1; fails before anything is written)     │
    │        ▼                                                             │
    │   write(head)                                                        │
    │        │                                                             │
    │        ▼                                                             │
    │   for chunk in body:  write(chunk)                                   │
    │        │                                                             │
    │        ▼                                                             │
    │   flush()           nothing may linger in the buffer at close()     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def encode_head(self, response: Response) -> bytes:
        """
        Encode everything up to and including the blank line.

        A handler-supplied Connection header is dropped: the fixed
        "Connection: close" is the only one ever sent.

        Raises:
            ValueError: If the response fails validation.
        """
        response.validate()

        parts = [response.status_line.encode("iso-8859-1"), CRLF, CONNECTION_CLOSE]
        for name, value in response.headers.items():
            if name.lower() == "connection":
                continue
            parts.append(f"{name}: {value}".encode("iso-8859-1"))
            parts.append(CRLF)
        parts.append(CRLF)
        return b"".join(parts)

    def serialize(self, response: Response, sink: BinaryIO) -> int:
        """
        Write response to sink and flush.

        Returns:
            Number of body bytes written.

        Raises:
            ValueError: Invalid head (nothing written).
            OSError: The sink failed.
        """
        head = self.encode_head(response)
        sink.write(head)

        written = 0
        for chunk in iter_body(response.body, self.chunk_size):
            sink.write(chunk)
            written += len(chunk)

        sink.flush()
        return written


# =============================================================================
# RESPONSE FACTORIES
# =============================================================================


def error_response(exc: BaseException) -> Response:
    """
    Build the 500 response for an exception.

    The body is the formatted traceback, so whoever is looking at the
    client sees what went wrong on the server.
    """
    text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return Response(
        STATUS_INTERNAL_SERVER_ERROR,
        {"Content-Type": "text/plain"},
        text.encode("utf-8"),
    )


def text_response(text: str, status_line: str = STATUS_OK) -> Response:
    """Plain text, UTF-8."""
    return Response(status_line, {"Content-Type": "text/plain; charset=UTF-8"}, text)


def html_response(html: str, status_line: str = STATUS_OK) -> Response:
    """HTML document, UTF-8."""
    return Response(status_line, {"Content-Type": "text/html; charset=UTF-8"}, html)


def json_response(data: Any, status_line: str = STATUS_OK) -> Response:
    """
    JSON body.

    A str is taken as already-serialized JSON; anything else goes
    through json.dumps().
    """
    if not isinstance(data, str):
        data = json.dumps(data)
    return Response(status_line, {"Content-Type": "application/json"}, data)


def css_response(css: str, status_line: str = STATUS_OK) -> Response:
    return Response(status_line, {"Content-Type": "text/css; charset=UTF-8"}, css)


def js_response(js: str, status_line: str = STATUS_OK) -> Response:
    return Response(status_line, {"Content-Type": "text/javascript; charset=UTF-8"}, js)
