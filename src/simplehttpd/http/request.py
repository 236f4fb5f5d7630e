"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads one HTTP/1.1 request straight off a connection stream and turns it
into a structured Request.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  ┌─ REQUEST LINE ─────────────────────────────────────────────────┐ │
    │  │                                                                 │ │
    │  │    GET /search?q=rust%20lang&tag=a&tag=b HTTP/1.1\r\n          │ │
    │  │    ─┬─ ───────────────┬──────────────── ────┬────              │ │
    │  │   Method            Raw path             Version                │ │
    │  │                       │                                         │ │
    │  │            ┌──────────┴───────────┐                             │ │
    │  │          Path              Query string                         │ │
    │  │        /search       q=rust%20lang&tag=a&tag=b                  │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ HEADERS ──────────────────────────────────────────────────────┐ │
    │  │    Host: example.com\r\n                                        │ │
    │  │    Content-Length: 5\r\n                                        │ │
    │  │    \r\n                      ◄── blank line ends the headers    │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ BODY ─────────────────────────────────────────────────────────┐ │
    │  │    hello                     ◄── exactly Content-Length bytes   │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STREAMING, NOT BUFFERING
=============================================================================

The parser never slurps the whole request into memory. It pulls the
request line and headers through a LineReader, then stops. The body is
left in the socket stream and handed to the handler as a BodyStream that
ends after Content-Length bytes. A handler that never reads the body never
pays for it.

=============================================================================
SINGLE AND MULTI VIEWS
=============================================================================

Query parameters and headers can repeat. Both are exposed two ways, built
in the same pass so they always share the same key set:

    ?k1=v1&k2=v2&k1=v3&k1=v1

    single  {"k1": "v1", "k2": "v2"}                  first occurrence wins
    multi   {"k1": ["v1", "v3"], "k2": ["v2"]}        ordered, no duplicates

Header names are stored exactly as sent. "Content-Type" and "content-type"
are different keys; use Headers.get_ci() for a case-insensitive lookup.

=============================================================================
"""

import io
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterator, List, Optional, Tuple
from urllib.parse import unquote_plus

from .body import BodyStream
from .errors import ClientDisconnected, ParseError
from .line_reader import DEFAULT_MAX_LINE_LENGTH, LineReader


logger = logging.getLogger(__name__)


DEFAULT_MAX_HEADERS = 100


class MultiValueMap:
    """
    Ordered mapping kept in two consistent views.

        single: key → first value seen
        multi:  key → every distinct value, in insertion order

    Values may be None (a query key without "=").
    """

    def __init__(self):
        self.single: Dict[str, Optional[str]] = {}
        self.multi: Dict[str, List[Optional[str]]] = {}

    def add(self, key: str, value: Optional[str]) -> None:
        """Record one occurrence of key."""
        self.single.setdefault(key, value)
        values = self.multi.setdefault(key, [])
        if value not in values:
            values.append(value)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """First value for key, or default if key is absent."""
        return self.single.get(key, default)

    def get_all(self, key: str) -> List[Optional[str]]:
        """All distinct values for key (empty list if absent)."""
        return list(self.multi.get(key, []))

    def __getitem__(self, key: str) -> Optional[str]:
        return self.single[key]

    def __contains__(self, key: object) -> bool:
        return key in self.single

    def __iter__(self) -> Iterator[str]:
        return iter(self.single)

    def __len__(self) -> int:
        return len(self.single)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MultiValueMap):
            return NotImplemented
        return self.single == other.single and self.multi == other.multi

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.multi!r})"


class QueryParameters(MultiValueMap):
    """Query string parameters, percent-decoded as UTF-8."""


class Headers(MultiValueMap):
    """Request headers, names stored case-sensitively."""

    def get_ci(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Case-insensitive lookup of the first matching header.

        Storage stays case-sensitive; this only scans the keys.
        """
        wanted = name.lower()
        for key, value in self.single.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass(frozen=True)
class RequestLine:
    """The first line of a request: METHOD SP PATH SP VERSION."""

    method: str
    path: str
    version: str


@dataclass
class Request:
    """
    A parsed HTTP request.

    =========================================================================
    ATTRIBUTES EXPLAINED
    =========================================================================

        request_line:     RequestLine with the raw method, path (query
                          string removed) and version tokens

        headers:          Headers (single + multi views)

        query_parameters: QueryParameters (single + multi views)

        body:             BodyStream, yields exactly Content-Length bytes
                          then end-of-stream. Read it 0 or more times.

        client_address:   (ip, port) of the peer, for logging

    =========================================================================
    """

    request_line: RequestLine
    headers: Headers = field(default_factory=Headers)
    query_parameters: QueryParameters = field(default_factory=QueryParameters)
    body: Optional[BinaryIO] = field(default=None, repr=False)
    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        if self.body is None:
            self.body = BodyStream(io.BytesIO(), 0)

    @property
    def method(self) -> str:
        return self.request_line.method

    @property
    def path(self) -> str:
        return self.request_line.path

    @property
    def version(self) -> str:
        return self.request_line.version

    @property
    def content_length(self) -> int:
        """Declared body length, 0 when absent or unparseable."""
        return parse_content_length(self.headers.get("Content-Length"))


def parse_content_length(value: Optional[str]) -> int:
    """
    Interpret a Content-Length header value.

    Absent, non-numeric or negative values all mean "no body". This is
    lenient on purpose: such a request is served with an empty body
    instead of being rejected.
    """
    if value is None:
        return 0
    value = value.strip()
    # isascii() keeps out Latin-1 digits like "²" that int() rejects
    if not (value.isascii() and value.isdigit()):
        return 0
    return int(value)


def parse_query_string(query: str) -> QueryParameters:
    """
    Parse "a=1&b=2&a=3" into QueryParameters.

    - Segments are split on "&", then on the FIRST "=" only
      ("a=b=c" → key "a", value "b=c")
    - A segment without "=" yields value None ("flag" → {"flag": None})
    - Empty segments are skipped ("a=1&&b=2", trailing "&")
    - Keys and values are percent-decoded as UTF-8, "+" becomes a space
    """
    params = QueryParameters()
    for segment in query.split("&"):
        if not segment:
            continue
        if "=" in segment:
            raw_key, raw_value = segment.split("=", 1)
            value: Optional[str] = unquote_plus(raw_value, encoding="utf-8")
        else:
            raw_key, value = segment, None
        params.add(unquote_plus(raw_key, encoding="utf-8"), value)
    return params


class RequestParser:
    """
    Parses one HTTP request from a binary stream.

    ==========================================================================
    PARSER PIPELINE
    ==========================================================================

        Connection stream
              │
              ▼
        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Request line ──► method, path, version (rest of line)         │
        │     │  EOF before any byte?  → ClientDisconnected                 │
        │     │  Fewer than 3 tokens?  → ParseError                         │
        │     ▼                                                             │
        │  2. Raw path ──► split on first "?" into path + query string      │
        │     ▼                                                             │
        │  3. Query string ──► QueryParameters                              │
        │     ▼                                                             │
        │  4. Header lines until blank line or EOF ──► Headers              │
        │     ▼                                                             │
        │  5. Content-Length (default 0) ──► BodyStream over the rest       │
        └───────────────────────────────────────────────────────────────────┘
              │
              ▼
        Request

    ==========================================================================
    """

    def __init__(
        self,
        strict_line_endings: bool = False,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        max_headers: int = DEFAULT_MAX_HEADERS,
    ):
        """
        Args:
            strict_line_endings: Require adjacent CR LF terminators.
                                 Default is the lenient legacy behavior.
            max_line_length: Longest accepted request/header line.
            max_headers: Most header lines accepted per request.
        """
        self.strict_line_endings = strict_line_endings
        self.max_line_length = max_line_length
        self.max_headers = max_headers

    def parse(
        self,
        stream: BinaryIO,
        client_address: Tuple[str, int] = ("", 0),
    ) -> Request:
        """
        Parse a request from stream.

        On return the stream is positioned at the first body byte; the
        returned Request's body reads from there.

        Raises:
            ClientDisconnected: The stream ended before any request bytes.
            ParseError: The request line or header block is malformed.
            OSError: Reading from the stream failed.
        """
        reader = LineReader(
            stream,
            strict=self.strict_line_endings,
            max_line_length=self.max_line_length,
        )

        first_line = reader.read_text_line()
        if first_line is None:
            raise ClientDisconnected("Connection closed before request line")

        request_line, query_string = self._parse_request_line(first_line)
        query_parameters = parse_query_string(query_string) if query_string else QueryParameters()
        headers = self._parse_headers(reader)

        content_length = parse_content_length(headers.get("Content-Length"))
        body = BodyStream(stream, content_length)

        return Request(
            request_line=request_line,
            headers=headers,
            query_parameters=query_parameters,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[RequestLine, Optional[str]]:
        """
        Split "GET /path?query HTTP/1.1" into a RequestLine and the raw
        query string (None when the path has no "?").

        Anything after the second space stays in the version.
        """
        tokens = line.strip().split(None, 2)
        if len(tokens) < 3:
            raise ParseError(f"Malformed request line: {line!r}")

        method, raw_path, version = tokens
        path, sep, query = raw_path.partition("?")
        return RequestLine(method=method, path=path, version=version), (query if sep else None)

    def _parse_headers(self, reader: LineReader) -> Headers:
        """
        Read "Name: Value" lines up to the blank line (or end-of-stream).

        Lines without a colon are skipped.
        """
        headers = Headers()
        count = 0

        while True:
            line = reader.read_text_line()
            if not line:
                # None (EOF) or "" (blank line) both end the header block
                break

            count += 1
            if count > self.max_headers:
                raise ParseError(f"Too many header lines (limit {self.max_headers})")

            name, sep, value = line.partition(":")
            if not sep:
                logger.debug(f"Skipping header line without colon: {line!r}")
                continue

            headers.add(name.strip(), value.strip())

        return headers


def parse_request(
    stream: BinaryIO,
    client_address: Tuple[str, int] = ("", 0),
    strict_line_endings: bool = False,
) -> Request:
    """
    Convenience function: parse one request with default limits.

    Example:
        request = parse_request(io.BytesIO(b"GET / HTTP/1.1\\r\\n\\r\\n"))
    """
    parser = RequestParser(strict_line_endings=strict_line_endings)
    return parser.parse(stream, client_address)
