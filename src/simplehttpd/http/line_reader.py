"""
=============================================================================
LINE READER
=============================================================================

HTTP/1.1 frames its request line and headers as text lines terminated by
CRLF. Everything else in the parser is built on top of "give me the next
line", so this is the lowest layer of the protocol stack.

    Socket bytes:   G E T   /   H T T P / 1 . 1 \r \n H o s t : x \r \n \r \n
                    └──────────── line 1 ──────────┘    └─ line 2 ─┘    └┘
                                                                     blank line

=============================================================================
LENIENT VS STRICT TERMINATION
=============================================================================

Real clients are sloppy. The reader supports two modes:

    LENIENT (default)
        A line ends once BOTH a CR and an LF byte have been seen since the
        line started. Order and adjacency do not matter. CR and LF bytes
        are never part of the returned line.

            b"abc\\r\\n"      → b"abc"
            b"a\\rb\\nc..."    → b"ab"   (ends at the \\n, \\r was seen earlier)
            b"abc\\n..."      → keeps reading until a \\r shows up

    STRICT
        A line ends only on an adjacent CR LF pair. A bare CR or LF is
        ordinary line content.

            b"a\\rb\\r\\n"     → b"a\\rb"

=============================================================================
RETURN VALUES
=============================================================================

    read_line() → bytes     the line, terminator stripped
                → b""       a blank line (end of the header block)
                → None      end of stream and nothing accumulated

A partial line at end-of-stream is returned as-is. The next call then
returns None.

=============================================================================
"""

from typing import BinaryIO, Optional

from .errors import ParseError


CR = 0x0D
LF = 0x0A

DEFAULT_MAX_LINE_LENGTH = 64 * 1024


class LineReader:
    """
    Reads CRLF-terminated lines from a binary stream.

    The reader consumes the stream one byte at a time, so it never reads
    past the current line's terminator. That matters: whatever follows the
    blank line is the request body, and it must still be in the stream
    when the BodyStream takes over.

    Wrap the socket in a buffered reader (socket.makefile("rb")) before
    handing it over; one-byte reads on a raw socket are one syscall each.

    Usage:
        reader = LineReader(conn.reader)
        while (line := reader.read_text_line()):
            ...
    """

    def __init__(
        self,
        stream: BinaryIO,
        strict: bool = False,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
    ):
        """
        Args:
            stream: Binary stream positioned at the start of a line.
            strict: Only terminate on an adjacent CR LF pair.
            max_line_length: Maximum bytes in a single line (terminator
                             excluded). Longer lines raise ParseError.
        """
        self.stream = stream
        self.strict = strict
        self.max_line_length = max_line_length

    def read_line(self) -> Optional[bytes]:
        """
        Read the next line.

        Returns:
            Line bytes without the terminator, b"" for a blank line,
            or None at end-of-stream with nothing accumulated.

        Raises:
            ParseError: If the line exceeds max_line_length.
            OSError: If reading from the stream fails.
        """
        if self.strict:
            return self._read_strict()
        return self._read_lenient()

    def read_text_line(self) -> Optional[str]:
        """
        Read the next line decoded as ISO-8859-1.

        Latin-1 maps every byte to exactly one character, so decoding can
        never fail and the original bytes can always be recovered.
        """
        line = self.read_line()
        if line is None:
            return None
        return line.decode("iso-8859-1")

    def _read_lenient(self) -> Optional[bytes]:
        line = bytearray()
        seen_cr = seen_lf = False
        got_any = False

        while not (seen_cr and seen_lf):
            byte = self.stream.read(1)
            if not byte:
                break
            got_any = True
            value = byte[0]
            if value == CR:
                seen_cr = True
            elif value == LF:
                seen_lf = True
            else:
                self._append(line, value)

        if not got_any:
            return None
        return bytes(line)

    def _read_strict(self) -> Optional[bytes]:
        line = bytearray()
        got_any = False
        pending_cr = False

        while True:
            byte = self.stream.read(1)
            if not byte:
                break
            got_any = True
            value = byte[0]
            if pending_cr:
                if value == LF:
                    return bytes(line)
                # The CR was not part of a terminator after all
                self._append(line, CR)
                pending_cr = False
            if value == CR:
                pending_cr = True
            else:
                self._append(line, value)

        if not got_any:
            return None
        if pending_cr:
            self._append(line, CR)
        return bytes(line)

    def _append(self, line: bytearray, value: int) -> None:
        if len(line) >= self.max_line_length:
            raise ParseError(f"Line exceeds {self.max_line_length} bytes")
        line.append(value)
