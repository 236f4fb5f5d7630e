"""
=============================================================================
HTTP PROTOCOL ERRORS
=============================================================================

Exceptions raised while reading a request off the wire.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    WHO HANDLES WHAT                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ParseError          Bytes arrived, but they are not a request     │
    │                       └── ConnectionHandler answers with a 500      │
    │                                                                      │
    │   ClientDisconnected  Peer closed before sending a request line     │
    │                       └── Nothing to answer, connection abandoned   │
    │                                                                      │
    │   OSError (builtin)   Socket unreadable / unwritable                │
    │                       └── Connection abandoned                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

ClientDisconnected subclasses ConnectionError, so any `except OSError`
clause in the connection handler treats it like any other I/O failure.

=============================================================================
"""


class ParseError(Exception):
    """
    Raised when the bytes on the wire cannot be framed as an HTTP request.

    Examples:
        - request line with fewer (or more) than three tokens
        - a single line longer than the configured limit
        - more header lines than the configured limit
    """


class ClientDisconnected(ConnectionError):
    """Raised when the client closes the connection before sending anything."""
