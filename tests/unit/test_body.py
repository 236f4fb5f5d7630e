"""
Unit tests for the Content-Length bounded body stream.
"""

import io

from simplehttpd.http.body import BodyStream


class BlockingStream(io.BytesIO):
    """Fails the test if anyone reads once the data is gone."""

    def read1(self, size=-1):
        data = super().read1(size)
        if not data:
            raise AssertionError("read past the available data")
        return data


class TestBodyStream:

    def test_reads_exactly_content_length(self):
        body = BodyStream(io.BytesIO(b"helloNEXT-REQUEST"), 5)

        assert body.read() == b"hello"
        assert body.read() == b""

    def test_zero_length_yields_nothing(self):
        body = BodyStream(io.BytesIO(b"ignored"), 0)

        assert body.read() == b""
        assert body.read(10) == b""

    def test_negative_length_treated_as_zero(self):
        body = BodyStream(io.BytesIO(b"ignored"), -3)

        assert body.content_length == 0
        assert body.read() == b""

    def test_small_reads_stop_at_boundary(self):
        body = BodyStream(io.BytesIO(b"abcdefXYZ"), 6)

        assert body.read(4) == b"abcd"
        assert body.read(4) == b"ef"
        assert body.read(4) == b""
        assert body.remaining == 0

    def test_past_end_never_touches_stream(self):
        source = BlockingStream(b"abc")
        body = BodyStream(source, 3)

        assert body.read() == b"abc"
        # Source is exhausted; these must not call read1() again
        assert body.read() == b""
        assert body.read(100) == b""

    def test_short_source_ends_early(self):
        body = BodyStream(io.BytesIO(b"ab"), 10)

        assert body.read() == b"ab"
        assert body.read() == b""

    def test_leaves_following_bytes_in_source(self):
        source = io.BytesIO(b"12345tail")
        body = BodyStream(source, 5)

        body.read()

        assert source.read() == b"tail"

    def test_file_object_api(self):
        body = BodyStream(io.BytesIO(b"line1\nline2\nextra"), 12)

        assert body.readable()
        assert list(body) == [b"line1\n", b"line2\n"]

    def test_close_leaves_source_open(self):
        source = io.BytesIO(b"data")
        body = BodyStream(source, 4)

        body.close()

        assert not source.closed
