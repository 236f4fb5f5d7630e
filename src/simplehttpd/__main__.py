"""
=============================================================================
SIMPLEHTTPD CLI ENTRY POINT
=============================================================================

Runs the server with a small built-in demo handler, handy for poking at
the parser with curl or netcat.

=============================================================================
USAGE
=============================================================================

    # Defaults (127.0.0.1:8080)
    python -m simplehttpd

    # Custom port, all interfaces
    python -m simplehttpd --host 0.0.0.0 --port 3000

    # Strict CRLF parsing, JSON access logs
    python -m simplehttpd --strict-lines --log-format json

    # Try it
    curl 'http://127.0.0.1:8080/search?q=rust%20lang&tag=a&tag=b'
    curl -d 'hello' http://127.0.0.1:8080/echo

Environment variables (HTTP_PORT, HTTP_HOST, ...) are read first; command
line arguments override them. See ServerConfig.from_env().

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ServerConfig
from .core import BindError
from .http import Request, Response, text_response
from .server import HTTPServer


def demo_handler(request: Request) -> Response:
    """
    GET (and HEAD): plain-text dump of what the parser saw.
    Anything else: echo the request body back.
    """
    if request.method in ("GET", "HEAD"):
        lines = [
            f"method:  {request.method}",
            f"path:    {request.path}",
            f"version: {request.version}",
            "",
            "query parameters:",
        ]
        for key, values in request.query_parameters.multi.items():
            lines.append(f"  {key} = {values}")
        lines.append("")
        lines.append("headers:")
        for name, values in request.headers.multi.items():
            lines.append(f"  {name}: {', '.join(v for v in values if v is not None)}")
        return text_response("\n".join(lines) + "\n")

    body = request.body.read()
    headers = {"Content-Length": str(len(body))}
    content_type = request.headers.get_ci("Content-Type")
    if content_type:
        headers["Content-Type"] = content_type
    return Response("HTTP/1.1 200 OK", headers, body)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simplehttpd",
        description="Minimal multi-threaded HTTP/1.1 server (one request per connection)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--host", "-H", default=None, help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-connection socket timeout in seconds (default: none, fully blocking)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / PROTOCOL ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)",
    )
    parser.add_argument(
        "--strict-lines",
        action="store_true",
        help="Only accept adjacent CR LF as a line terminator",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / META
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"simplehttpd {__version__}")

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any explicitly given CLI argument on top."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.strict_lines:
        config.strict_line_endings = True
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = HTTPServer(demo_handler, config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except BindError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
