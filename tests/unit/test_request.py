"""
Unit tests for HTTP request parsing.
"""

import io

import pytest

from simplehttpd.http.errors import ClientDisconnected, ParseError
from simplehttpd.http.request import (
    Headers,
    QueryParameters,
    Request,
    RequestLine,
    RequestParser,
    parse_content_length,
    parse_query_string,
    parse_request,
)


def parse(raw: bytes, **kwargs) -> Request:
    return parse_request(io.BytesIO(raw), **kwargs)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        parser = RequestParser()
        request = parser.parse(io.BytesIO(sample_get_request), ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/users"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.request_line == RequestLine("GET", "/api/users", "HTTP/1.1")

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse(sample_get_request)

        assert request.headers["Host"] == "localhost:8080"
        assert request.headers.get("User-Agent") == "pytest"
        assert request.headers.get("Accept") == "application/json"
        assert list(request.headers) == ["Host", "User-Agent", "Accept"]

    def test_header_names_are_case_sensitive(self):
        request = parse(b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n")

        assert "content-type" not in request.headers
        assert request.headers.get("CONTENT-TYPE") == "text/html"
        assert request.headers.get_ci("content-type") == "text/html"

    def test_header_values_are_trimmed(self):
        request = parse(b"GET / HTTP/1.1\r\n  X-Pad  :   padded value  \r\n\r\n")

        assert request.headers["X-Pad"] == "padded value"

    def test_header_value_may_contain_colon(self):
        request = parse(b"GET / HTTP/1.1\r\nHost: example.com:8080\r\n\r\n")

        assert request.headers["Host"] == "example.com:8080"

    def test_duplicate_headers(self):
        raw = (
            b"GET / HTTP/1.1\r\n"
            b"Accept: text/html\r\n"
            b"Accept: application/json\r\n"
            b"Accept: text/html\r\n"
            b"\r\n"
        )
        request = parse(raw)

        assert request.headers.single["Accept"] == "text/html"
        assert request.headers.multi["Accept"] == ["text/html", "application/json"]

    def test_header_line_without_colon_is_skipped(self):
        request = parse(b"GET / HTTP/1.1\r\nnot a header\r\nHost: x\r\n\r\n")

        assert list(request.headers) == ["Host"]

    def test_parse_missing_headers(self):
        request = parse(b"GET / HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_headers_end_at_eof(self):
        request = parse(b"GET / HTTP/1.1\r\nHost: x\r\n")

        assert request.headers["Host"] == "x"
        assert request.body.read() == b""

    def test_query_string_scenario(self):
        request = parse(b"GET /search?q=rust%20lang HTTP/1.1\r\nHost: x\r\n\r\n")

        assert request.path == "/search"
        assert request.query_parameters.single["q"] == "rust lang"

    def test_path_is_not_decoded(self):
        request = parse(b"GET /a%20b?x=1 HTTP/1.1\r\n\r\n")

        assert request.path == "/a%20b"

    def test_no_query_string(self):
        request = parse(b"GET /plain HTTP/1.1\r\n\r\n")

        assert len(request.query_parameters) == 0

    def test_post_with_body(self, sample_post_request: bytes):
        request = parse(sample_post_request)

        assert request.method == "POST"
        body = b'{"name": "John", "email": "john@example.com"}'
        assert request.content_length == len(body)
        assert request.body.read() == body

    def test_body_scenario(self):
        stream = io.BytesIO(b"POST /echo HTTP/1.1\r\nContent-Length: 5\r\n\r\nhelloEXTRA")
        request = RequestParser().parse(stream)

        assert request.body.read() == b"hello"
        assert request.body.read() == b""

    def test_invalid_content_length_means_empty_body(self):
        request = parse(b"POST / HTTP/1.1\r\nContent-Length: abc\r\n\r\nhello")

        assert request.content_length == 0
        assert request.body.read() == b""

    def test_content_length_is_looked_up_case_sensitively(self):
        request = parse(b"POST / HTTP/1.1\r\ncontent-length: 5\r\n\r\nhello")

        assert request.body.read() == b""

    def test_non_standard_method_is_accepted(self):
        request = parse(b"BREW /pot HTTP/1.1\r\n\r\n")

        assert request.method == "BREW"

    @pytest.mark.parametrize("line", [
        b"GET\r\n\r\n",
        b"GET /\r\n\r\n",
        b"\r\n\r\n",
    ])
    def test_malformed_request_line(self, line: bytes):
        with pytest.raises(ParseError):
            parse(line)

    def test_extra_request_line_tokens_stay_in_version(self):
        request = parse(b"GET /a b HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/a"
        assert request.version == "b HTTP/1.1"

    def test_trailing_token_after_version(self):
        request = parse(b"GET / HTTP/1.1 extra\r\n\r\n")

        assert request.path == "/"
        assert request.version == "HTTP/1.1 extra"

    def test_empty_stream_is_a_disconnect(self):
        with pytest.raises(ClientDisconnected):
            parse(b"")

    def test_too_many_headers(self):
        raw = b"GET / HTTP/1.1\r\n" + b"X-A: 1\r\n" * 5 + b"\r\n"
        parser = RequestParser(max_headers=4)

        with pytest.raises(ParseError):
            parser.parse(io.BytesIO(raw))

    def test_lenient_line_endings_by_default(self):
        request = parse(b"GET / HTTP/1.1\n\rHost: x\n\r\n\r")

        assert request.path == "/"
        assert request.headers["Host"] == "x"

    def test_strict_line_endings(self):
        raw = b"GET / HTTP/1.1\r\nX-Odd: a\rb\r\n\r\n"
        request = parse(raw, strict_line_endings=True)

        assert request.headers["X-Odd"] == "a\rb"


class TestQueryParameters:
    """Tests for query string parsing."""

    def test_first_wins_and_multi_order(self):
        params = parse_query_string("k1=v1&k2=v2&k1=v3")

        assert params.single["k1"] == "v1"
        assert params.multi["k1"] == ["v1", "v3"]
        assert params.single["k2"] == "v2"

    def test_repeated_identical_values_collapse(self):
        params = parse_query_string("tag=a&tag=b&tag=a")

        assert params.multi["tag"] == ["a", "b"]

    def test_views_share_key_set(self):
        params = parse_query_string("a=1&b&c=3&a=2")

        assert set(params.single) == set(params.multi)

    def test_key_without_equals_has_none_value(self):
        params = parse_query_string("flag&x=1")

        assert "flag" in params
        assert params["flag"] is None
        assert params.multi["flag"] == [None]

    def test_split_on_first_equals_only(self):
        params = parse_query_string("expr=a=b")

        assert params["expr"] == "a=b"

    def test_empty_value(self):
        params = parse_query_string("empty=")

        assert params["empty"] == ""

    def test_percent_decoding_utf8(self):
        params = parse_query_string("name=J%C3%BCrgen&k%20ey=a+b")

        assert params["name"] == "Jürgen"
        assert params["k ey"] == "a b"

    def test_empty_segments_skipped(self):
        params = parse_query_string("a=1&&b=2&")

        assert list(params) == ["a", "b"]

    def test_get_defaults(self):
        params = parse_query_string("a=1")

        assert params.get("missing") is None
        assert params.get("missing", "x") == "x"
        assert params.get_all("missing") == []
        assert params.get_all("a") == ["1"]

    def test_get_all_returns_copy(self):
        params = parse_query_string("a=1")

        params.get_all("a").append("2")

        assert params.multi["a"] == ["1"]


class TestContentLength:

    @pytest.mark.parametrize("value, expected", [
        (None, 0),
        ("0", 0),
        ("42", 42),
        (" 7 ", 7),
        ("abc", 0),
        ("-5", 0),
        ("+5", 0),
        ("1.5", 0),
        ("²", 0),
    ])
    def test_parse_content_length(self, value, expected):
        assert parse_content_length(value) == expected


class TestRequest:
    """Tests for the Request dataclass itself."""

    def test_defaults(self):
        request = Request(RequestLine("GET", "/", "HTTP/1.1"))

        assert isinstance(request.headers, Headers)
        assert isinstance(request.query_parameters, QueryParameters)
        assert request.body.read() == b""
        assert request.content_length == 0

    def test_request_line_is_immutable(self):
        line = RequestLine("GET", "/", "HTTP/1.1")

        with pytest.raises(AttributeError):
            line.method = "POST"
