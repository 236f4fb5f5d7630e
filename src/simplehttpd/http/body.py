"""
=============================================================================
BOUNDED REQUEST BODY
=============================================================================

After the blank line that ends the headers, the socket stream contains the
request body, and only Content-Length bytes of it belong to this request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SOCKET STREAM                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POST /echo HTTP/1.1\r\n                                            │
    │   Content-Length: 5\r\n            ◄── consumed by LineReader        │
    │   \r\n                                                               │
    │   hello                            ◄── BodyStream: exactly 5 bytes   │
    │   ........                         ◄── never handed out              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

BodyStream is an io.RawIOBase, so the handler gets the full file-object
API for free: read(), read(n), readinto(), readline(), iteration and
shutil.copyfileobj all work and all stop at the Content-Length boundary.

Once the limit is reached every read returns b"" immediately. It never
touches the socket again, so it cannot block waiting for bytes that are
not part of this request.

=============================================================================
"""

import io
from typing import BinaryIO


class BodyStream(io.RawIOBase):
    """
    Read-only view over a stream, capped at a fixed number of bytes.

    Closing the view does not close the underlying connection stream.

    Attributes:
        content_length: Total bytes this body exposes.
        remaining: Bytes not yet handed out.
    """

    def __init__(self, stream: BinaryIO, content_length: int):
        super().__init__()
        self._stream = stream
        self.content_length = max(0, content_length)
        self.remaining = self.content_length

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        """
        Read up to len(buffer) bytes, never more than what is left.

        Returns 0 at end-of-body, or if the client closed the connection
        before sending the full Content-Length.
        """
        if self.remaining <= 0 or len(buffer) == 0:
            return 0

        wanted = min(len(buffer), self.remaining)
        # read1() returns what is buffered (or one raw read) instead of
        # blocking until all `wanted` bytes have arrived
        read1 = getattr(self._stream, "read1", None)
        data = read1(wanted) if read1 is not None else self._stream.read(wanted)
        if not data:
            return 0

        count = len(data)
        buffer[:count] = data
        self.remaining -= count
        return count

    def __repr__(self) -> str:
        return (
            f"<BodyStream content_length={self.content_length} "
            f"remaining={self.remaining}>"
        )
