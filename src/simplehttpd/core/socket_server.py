"""
=============================================================================
TCP ACCEPTOR
=============================================================================

Owns the listening socket. Its only job is to accept connections and hand
each one off as fast as possible; everything slow happens on a worker.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create the listening socket
    2. bind()      Reserve IP:PORT           ── failure → BindError, no retry
    3. listen()    Kernel starts queueing connections (backlog)
    4. accept()    Loop: one client socket per call
    5. close()     On shutdown()

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         ACCEPT LOOP                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while running:                                                     │
    │       accept()  ──► timeout?      continue (re-check running)       │
    │           │     ──► OSError?      stopped → exit loop               │
    │           │                       running → log, back off, continue │
    │           ▼                                                          │
    │       Connection(client_socket)                                      │
    │           │                                                          │
    │           ▼                                                          │
    │       on_connection(conn)   ── HTTPServer queues it on the pool     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STOPPING A BLOCKED accept()
=============================================================================

shutdown() can run on another thread (or in a signal handler) while the
loop is sitting inside accept(). Two things make the loop notice quickly:

    1. shutdown(SHUT_RDWR) on the listening socket wakes accept() with an
       error on Linux.
    2. accept() has a timeout (accept_poll_interval), so on platforms
       where (1) does nothing the loop still re-checks the running flag.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ACCEPT_ERROR_BACKOFF = 0.05


class BindError(OSError):
    """The listening socket could not be bound. Fatal at startup."""


class SocketServer:
    """
    Low-level TCP acceptor.

    Usage:
        def on_connection(conn: Connection):
            pool.submit(handle, conn)

        server = SocketServer(config)
        server.start(on_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Supplies host, port, backlog, timeout and
                    accept_poll_interval.

        The socket is not created until start().
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False

        # Set once listening; cleared again after cleanup
        self.ready = threading.Event()
        self._stopped = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The address actually bound. With port 0 this is where the OS's
        chosen port shows up. Falls back to the configured address
        before start().
        """
        sock = self._socket
        if sock is not None:
            try:
                return sock.getsockname()[:2]
            except OSError:
                pass
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create the listening socket with its options set."""
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Restart without waiting for TIME_WAIT to expire
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Send small responses without Nagle delay
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass

        sock.settimeout(self.config.accept_poll_interval)
        return sock

    def bind(self) -> None:
        """
        Create, bind and listen.

        Split out of start() so callers can learn the bound address (or
        the bind failure) before the loop starts.

        Raises:
            BindError: If bind() or listen() fails.
        """
        if self._socket is not None:
            return

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise BindError(e.errno, f"Cannot bind {self.config.host}:{self.config.port}: {e.strerror or e}") from e

        self._socket = sock
        self._stopped.clear()

    def start(self, on_connection: Callable[[Connection], None]):
        """
        Bind (if not already bound) and run the accept loop.

        Blocks until shutdown() is called.

        Args:
            on_connection: Called on the accept thread for every accepted
                           connection. Must return quickly.

        Raises:
            BindError: If the socket cannot be bound.
        """
        self.bind()
        # shutdown() may already have run between bind() and here
        self._running = not self._stopped.is_set()

        self._setup_signals()
        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self.ready.set()

        try:
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: Callable[[Connection], None]):
        while self._running:
            sock = self._socket
            if sock is None:
                break

            try:
                client_socket, client_address = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                self._stopped.wait(ACCEPT_ERROR_BACKOFF)
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    timeout=self.config.timeout,
                )
            except OSError as e:
                # Peer vanished between accept() and setup
                logger.warning(f"Dropping connection from {client_address[0]}: {e}")
                client_socket.close()
                continue

            on_connection(conn)

    def shutdown(self):
        """
        Stop the accept loop. Safe from any thread and from signal
        handlers; safe to call more than once.
        """
        if not self._running and self._socket is None:
            return

        logger.info("Shutting down socket server...")
        self._running = False
        self._stopped.set()

        sock = self._socket
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Not connected / already closed

    def _cleanup(self):
        self._restore_signals()

        sock, self._socket = self._socket, None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

        self._running = False
        self.ready.clear()
        logger.info("Socket server stopped")

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """
        Turn SIGINT/SIGTERM into a graceful shutdown().

        signal.signal() only works on the main thread, so a server run
        from a background thread (tests, embedding) skips this.
        """
        if not self.config.install_signal_handlers:
            return
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
