"""
pytest configuration and fixtures.
"""

import http.client
import socket
from typing import Callable, Dict, Generator, List, Optional, Tuple

import pytest
import structlog

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from diagserver import HTTPServer, RequestIDGenerator, ServerConfig, create_app
from diagserver.http import HTTPRequest, parse_request


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /headers?verbose=1&verbose=2 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"x-real-ip: 203.0.113.7\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b"name=diag&level=debug"
    return (
        b"POST /request HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    """Build an HTTPRequest as the parser would, without a socket."""
    def _make(
        method: str = "GET",
        target: str = "/",
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        client_address: Tuple = ("10.0.0.1", 5555),
    ) -> HTTPRequest:
        lines = [f"{method} {target} HTTP/1.1", "Host: localhost:8080"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if body:
            lines.append(f"Content-Length: {len(body)}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body
        return parse_request(raw, client_address)
    return _make


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration: loopback, ephemeral port, short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        read_timeout=2.0,
        write_timeout=2.0,
        idle_timeout=2.0,
        shutdown_timeout=2.0,
        accept_poll_interval=0.05,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def serve_errors() -> List[OSError]:
    """Accept-loop errors, recorded instead of exiting the test process."""
    return []


@pytest.fixture
def generator() -> RequestIDGenerator:
    return RequestIDGenerator(prefix="TeStId")


@pytest.fixture
def app(
    config: ServerConfig,
    generator: RequestIDGenerator,
    serve_errors: List[OSError],
) -> Generator[HTTPServer, None, None]:
    """The diagnostic server, started on an ephemeral port."""
    server = create_app(config, generator=generator, on_serve_error=serve_errors.append)
    server.start()

    yield server

    server.shutdown(timeout=1.0)


class Response:
    """What a test client got back."""

    def __init__(self, status: int, headers: http.client.HTTPMessage, body: bytes):
        self.status = status
        self.headers = headers
        self.body = body

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


def fetch(
    server: HTTPServer,
    path: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    body: Optional[bytes] = None,
    timeout: float = 5.0,
) -> Response:
    """One request on a fresh connection."""
    host, port = server.address
    conn = http.client.HTTPConnection(host, port, timeout=timeout)
    try:
        conn.request(method, path, body=body, headers=headers or {})
        raw = conn.getresponse()
        return Response(raw.status, raw.headers, raw.read())
    finally:
        conn.close()


@pytest.fixture
def client(app: HTTPServer) -> Callable[..., Response]:
    """fetch() bound to the running app."""
    def _client(path: str, **kwargs) -> Response:
        return fetch(app, path, **kwargs)
    return _client


@pytest.fixture
def reset_logging() -> Generator[None, None, None]:
    """Undo configure_logging() after a test."""
    yield
    import logging
    from diagserver import log

    root = logging.getLogger()
    if log._handler is not None:
        root.removeHandler(log._handler)
        log._handler.close()
        log._handler = None
    if log._stream is not None:
        log._stream.close()
        log._stream = None
    root.setLevel(logging.WARNING)
    structlog.reset_defaults()
