"""
=============================================================================
MAIN HTTP SERVER
=============================================================================

Ties the components together: the acceptor feeds connections to the
worker pool, and each worker runs one ConnectionHandler pass over its
connection.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HTTP SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        │  (Orchestrator) │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────────┐    │
    │    │ SocketServer │    │  ThreadPool  │    │ConnectionHandler │    │
    │    │  (accept)    │───►│  (workers)   │───►│ parse → handler  │    │
    │    └──────────────┘    └──────────────┘    │ → serialize      │    │
    │                                            └──────────────────┘    │
    │                                                      │              │
    │                                                      ▼              │
    │                                           handler(Request)         │
    │                                             → Response             │
    │                                           (the application)        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── SocketServer accepts, wraps the socket in a Connection

    2. QUEUE FOR PROCESSING
       └── Connection queued on the ThreadPool (closed if the queue is full)

    3. PARSE REQUEST (worker thread)
       └── RequestParser reads request line + headers, body left streaming

    4. HANDLER
       └── The application's callable turns the Request into a Response

    5. SEND RESPONSE
       └── ResponseSerializer writes status, Connection: close, headers, body

    6. CLOSE
       └── Always. One request per connection.

=============================================================================
ERROR MAPPING
=============================================================================

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ Failure                      │ What the client sees                 │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ ParseError                   │ 500 + traceback (text/plain)         │
    │ handler raised               │ 500 + traceback (text/plain)         │
    │ handler returned a non-      │ 500 + traceback (text/plain)         │
    │   Response / invalid head    │                                      │
    │   or body type               │                                      │
    │ socket read/write failed     │ connection closed, no response       │
    │ client sent nothing          │ connection closed, no response       │
    │ body source failed mid-send  │ truncated response, then close       │
    └──────────────────────────────┴──────────────────────────────────────┘

Nothing that goes wrong on one connection reaches another connection or
the accept loop.

=============================================================================
"""

import json
import logging
import threading
import time
from typing import Callable, Optional, Tuple

from .config import ServerConfig
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .http import (
    ClientDisconnected,
    ParseError,
    Request,
    RequestParser,
    Response,
    ResponseSerializer,
    error_response,
)


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("simplehttpd.access")


Handler = Callable[[Request], Response]


class ConnectionHandler:
    """
    Runs one connection's request/response cycle, end to end.

    Holds no per-connection state, so a single instance is shared by all
    worker threads.
    """

    def __init__(
        self,
        handler: Handler,
        parser: Optional[RequestParser] = None,
        serializer: Optional[ResponseSerializer] = None,
        log_format: str = "text",
    ):
        """
        Args:
            handler: The application callable, Request -> Response.
            parser: Request parser (defaults to lenient, default limits).
            serializer: Response serializer (default chunk size).
            log_format: Access log format, "text" or "json".
        """
        self.handler = handler
        self.parser = parser or RequestParser()
        self.serializer = serializer or ResponseSerializer()
        self.log_format = log_format

    def handle(self, conn: Connection) -> None:
        """
        Process a connection (runs in a worker thread).

        The connection is closed on every path out of this method.
        """
        start_time = time.time()

        with conn:
            # ─────────────────────────────────────────────────────────────
            # PARSE REQUEST
            # ─────────────────────────────────────────────────────────────
            conn.state = ConnectionState.READING
            request: Optional[Request] = None
            try:
                request = self.parser.parse(conn.reader, conn.address)
            except ClientDisconnected:
                logger.debug(f"[{conn.id}] Client closed without sending a request")
                return
            except OSError as e:
                logger.warning(f"[{conn.id}] Read failed, abandoning connection: {e}")
                return
            except ParseError as e:
                logger.warning(f"[{conn.id}] Malformed request from {conn.client_ip}: {e}")
                response = error_response(e)
            else:
                # ─────────────────────────────────────────────────────────
                # RUN THE HANDLER
                # ─────────────────────────────────────────────────────────
                conn.state = ConnectionState.PROCESSING
                response = self._invoke(conn, request)

            # ─────────────────────────────────────────────────────────────
            # SEND RESPONSE
            # ─────────────────────────────────────────────────────────────
            conn.state = ConnectionState.WRITING
            try:
                sent = self.serializer.serialize(response, conn.writer)
            except OSError as e:
                logger.warning(f"[{conn.id}] Write failed, abandoning connection: {e}")
                return
            except Exception as e:
                # Head is already on the wire; a 500 cannot follow it
                logger.exception(f"[{conn.id}] Response body failed mid-stream: {e}")
                return

            self._log_access(conn, request, response, sent, start_time)

    def _invoke(self, conn: Connection, request: Request) -> Response:
        """
        Call the application handler, mapping any failure to a 500.
        """
        try:
            response = self.handler(request)
            if not isinstance(response, Response):
                raise TypeError(
                    f"Handler returned {type(response).__name__}, expected Response"
                )
            # Headers may have been modified after construction
            response.validate()
            return response
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return error_response(e)

    def _log_access(
        self,
        conn: Connection,
        request: Optional[Request],
        response: Response,
        sent: int,
        start_time: float,
    ) -> None:
        if not access_logger.isEnabledFor(logging.INFO):
            return

        duration_ms = (time.time() - start_time) * 1000
        entry = {
            "connection_id": conn.id,
            "client_ip": conn.client_ip,
            "method": request.method if request else "-",
            "path": request.path if request else "-",
            "version": request.version if request else "-",
            "status": response.status_code,
            "bytes": sent,
            "duration_ms": round(duration_ms, 2),
        }

        if self.log_format == "json":
            access_logger.info(json.dumps(entry))
        else:
            access_logger.info(
                f'{entry["client_ip"]} [{conn.id}] '
                f'"{entry["method"]} {entry["path"]} {entry["version"]}" '
                f'{entry["status"] or "-"} {sent} {duration_ms:.2f}ms'
            )


class HTTPServer:
    """
    Minimal multi-threaded HTTP/1.1 server: one request per connection.

    =========================================================================
    USAGE
    =========================================================================

        from simplehttpd import HTTPServer, ServerConfig, text_response

        def handler(request):
            name = request.query_parameters.get("name", "world")
            return text_response(f"Hello, {name}!")

        # Blocking, until Ctrl+C / SIGTERM
        HTTPServer(handler, ServerConfig(port=8080)).run()

        # Or in the background
        with HTTPServer(handler, ServerConfig(port=0)) as server:
            host, port = server.server_address
            ...

    =========================================================================
    """

    def __init__(self, handler: Handler, config: Optional[ServerConfig] = None):
        """
        Args:
            handler: Callable taking a Request and returning a Response.
                     Anything it raises becomes a 500 response.
            config: Server configuration; defaults if omitted.
        """
        if not callable(handler):
            raise TypeError("handler must be callable")

        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast
        self.handler = handler

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._connection_handler = ConnectionHandler(
            handler,
            parser=RequestParser(
                strict_line_endings=self.config.strict_line_endings,
                max_line_length=self.config.max_line_length,
                max_headers=self.config.max_headers,
            ),
            serializer=ResponseSerializer(chunk_size=self.config.chunk_size),
            log_format=self.config.log_format,
        )

        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def server_address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port even when configured with 0."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Configure logging and serve until stopped (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            BindError: If the address cannot be bound.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()
        self.serve_forever()

    def serve_forever(self):
        """
        Bind, start the workers and run the accept loop (blocking).

        Unlike run(), leaves logging configuration to the caller.
        """
        self._socket_server.bind()
        self._thread_pool.start()
        self._running = True

        try:
            self._socket_server.start(self._dispatch)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._stop_workers()

    def start(self, timeout: float = 5.0) -> "HTTPServer":
        """
        Serve from a background thread and return once listening.

        The bind happens on the calling thread, so BindError is raised
        here rather than lost in the background thread.

        Returns:
            Self, for chaining.
        """
        if self._thread is not None and self._thread.is_alive():
            return self

        self._socket_server.bind()
        self._thread = threading.Thread(
            target=self.serve_forever,
            name="simplehttpd-acceptor",
            daemon=True,
        )
        self._thread.start()

        if not self._socket_server.ready.wait(timeout):
            raise RuntimeError("Server did not start listening in time")
        return self

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop accepting, let in-flight connections finish, stop workers.

        Safe to call from any thread. When the server was started with
        start(), waits for the background thread to exit.
        """
        self._socket_server.shutdown()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            self._thread = None

    def _stop_workers(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.shutdown_timeout)
        logger.info("Server stopped")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("simplehttpd").setLevel(level)

    def __enter__(self) -> "HTTPServer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, conn: Connection):
        """
        Hand a freshly accepted connection to the worker pool.

        Runs on the accept thread, so it must not block.
        """
        submitted = self._thread_pool.submit(self._connection_handler.handle, conn)
        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, dropping connection from {conn.client_ip}")
            conn.abort()


def create_server(handler: Handler, config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Factory for HTTPServer.

    Example:
        server = create_server(my_handler, ServerConfig(port=3000))
        server.run()
    """
    return HTTPServer(handler, config)
