"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing: sockets and threads. Nothing here knows what an
HTTP request looks like.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds the listening socket (BindError if it cannot)              │
    │  • Runs the accept() loop on the calling thread                     │
    │  • Stops promptly when shutdown() closes the listener               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one Connection per accept()
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • Bounded queue of accepted connections                            │
    │  • Worker threads, min_workers → max_workers                        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ worker runs the ConnectionHandler
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered reader/writer over the client socket                    │
    │  • Graceful close (flush, FIN, drain, close)                        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer, BindError
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "BindError",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
