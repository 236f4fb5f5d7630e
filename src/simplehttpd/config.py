"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the server: where to listen, how many
workers, how strict the parser is, how to log.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m simplehttpd --port 3000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_PORT=3000 python -m simplehttpd                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Embedding applications usually just build one in code:

    config = ServerConfig(host="0.0.0.0", port=8000, max_workers=32)
    HTTPServer(handler, config).run()

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog, timeout, accept_poll_interval

    WORKERS
    - min_workers, max_workers, queue_size, shutdown_timeout

    PROTOCOL
    - chunk_size, max_line_length, max_headers, strict_line_endings

    LOGGING
    - log_level, log_format

    PROCESS
    - install_signal_handlers

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: int = 8080
    """
    The port number to listen on. 0 asks the OS for a free port; read
    the real one from HTTPServer.server_address once listening.
    """

    backlog: int = 128
    """Maximum number of connections queued by the kernel before accept()."""

    timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = fully blocking: a client that stalls mid-request holds its
    worker until it goes away. A timeout turns the stall into an I/O
    error and the connection is dropped.
    """

    accept_poll_interval: float = 1.0
    """How often (seconds) a blocked accept() wakes up to check for shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKER POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 16
    """
    Upper bound on worker threads. Each in-flight connection occupies
    one worker for its whole lifetime.
    """

    queue_size: int = 128
    """
    Accepted connections waiting for a free worker. When full, new
    connections are closed immediately.
    """

    shutdown_timeout: float = 30.0
    """Seconds to wait for in-flight connections when stopping."""

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    chunk_size: int = 8192
    """Bytes per write when streaming a response body."""

    max_line_length: int = 64 * 1024
    """Longest accepted request line or header line, in bytes."""

    max_headers: int = 100
    """Most header lines accepted in one request."""

    strict_line_endings: bool = False
    """
    False: a line ends once both CR and LF have been seen (legacy,
    tolerant of broken clients).
    True: a line ends only on an adjacent CR LF pair.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # PROCESS
    # ─────────────────────────────────────────────────────────────────────

    install_signal_handlers: bool = True
    """
    Catch SIGINT/SIGTERM for a graceful stop. Only honoured when the
    server runs in the main thread (Python restricts signal.signal()).
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTP_HOST          Server host (default: 127.0.0.1)
        HTTP_PORT          Server port (default: 8080)
        HTTP_BACKLOG       Listen backlog (default: 128)
        HTTP_WORKERS       Max worker threads (default: 16)
        HTTP_TIMEOUT       Socket timeout in seconds (default: none)
        HTTP_STRICT_LINES  "1"/"true"/"yes" for strict CRLF (default: off)
        HTTP_LOG_LEVEL     Logging level (default: INFO)
        HTTP_LOG_FORMAT    text or json (default: text)

        =====================================================================
        """
        timeout = os.getenv("HTTP_TIMEOUT")
        max_workers = int(os.getenv("HTTP_WORKERS", "16"))
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            backlog=int(os.getenv("HTTP_BACKLOG", "128")),
            max_workers=max_workers,
            min_workers=min(cls.min_workers, max_workers),
            timeout=float(timeout) if timeout else None,
            strict_line_endings=os.getenv("HTTP_STRICT_LINES", "").lower() in ("1", "true", "yes"),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by HTTPServer at construction, so a bad value fails at
        startup instead of on the first request.

        Raises:
            ValueError: Describing the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0 or None")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.max_line_length < 1:
            raise ValueError("max_line_length must be >= 1")

        if self.max_headers < 0:
            raise ValueError("max_headers must be >= 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")
