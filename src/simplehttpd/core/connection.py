"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket. A connection in this server carries
exactly one request and one response, then it is closed:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONNECTION LIFECYCLE                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSED             │
    │             │              │            │          ▲                 │
    │             └──────────────┴────────────┴──────────┘                 │
    │                  any I/O failure goes straight to CLOSED            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY BUFFERED STREAMS?
=============================================================================

The parser reads request lines one byte at a time so it never consumes
body bytes by accident. On a bare socket each of those would be a recv()
syscall. socket.makefile("rb") puts a BufferedReader in between: one
recv() fills the buffer, the byte-by-byte reads are served from memory.

The write side is buffered too, so the status line, each header and the
small body chunks are coalesced into a few send() calls. flush() before
close() pushes out what is left.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)


# Bounds on discarding unread input at close
DRAIN_MAX_BYTES = 64 * 1024
DRAIN_TIMEOUT = 0.5


class ConnectionState(Enum):
    """Where a connection is in its single request/response cycle."""

    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier used as a log prefix.
        state: Current ConnectionState.
        created_at: Timestamp when the connection was accepted.
        timeout: Socket timeout in seconds, None for fully blocking.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    timeout: Optional[float] = None

    _reader: Optional[BinaryIO] = field(default=None, repr=False)
    _writer: Optional[BinaryIO] = field(default=None, repr=False)

    def __post_init__(self):
        # None puts the socket in blocking mode
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def reader(self) -> BinaryIO:
        """Buffered binary input stream over the socket (created lazily)."""
        if self._reader is None:
            self._reader = self.socket.makefile("rb")
        return self._reader

    @property
    def writer(self) -> BinaryIO:
        """Buffered binary output stream over the socket (created lazily)."""
        if self._writer is None:
            self._writer = self.socket.makefile("wb")
        return self._writer

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def close(self):
        """
        Close the connection gracefully.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    Close Sequence                                │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. flush writer      anything still buffered goes out         │
        │   2. shutdown(SHUT_WR) FIN: "response complete"                 │
        │   3. drain input       unread request body is discarded, so     │
        │                        the kernel does not answer it with RST   │
        │                        and destroy the response in flight       │
        │   4. close streams + socket                                     │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        if self._writer is not None:
            try:
                self._writer.flush()
            except (OSError, ValueError):
                pass  # Peer already gone or writer closed

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        self._drain_input()

        for stream in (self._reader, self._writer):
            if stream is None:
                continue
            try:
                stream.close()
            except (OSError, ValueError):
                pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def _drain_input(self):
        """
        Discard what the client is still sending, up to DRAIN_MAX_BYTES
        or DRAIN_TIMEOUT seconds in total, whichever comes first.
        """
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < DRAIN_MAX_BYTES:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(4096)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass  # Includes socket.timeout

    def abort(self):
        """Close immediately: no flush, no drain. Never blocks."""
        if self.state == ConnectionState.CLOSED:
            return
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection aborted")

    def __enter__(self):
        """
        Context manager entry.

            with conn:
                request = parser.parse(conn.reader)
                ...
            # connection closed here, whatever happened inside
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
