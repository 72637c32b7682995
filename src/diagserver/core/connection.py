"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with an HTTP-aware read/write API.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

TCP does not preserve message boundaries: one request may arrive split
over several recv() calls, or two pipelined requests in one. We buffer
what arrives and cut requests out of the buffer:

    1. Read until "\r\n\r\n" (end of headers)
    2. Take Content-Length from the headers
    3. Read until the body is complete
    4. Keep any extra bytes for the next request

=============================================================================
CONNECTION STATES
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──┬──► CLOSING ──► CLOSED
                ▲                                 │
                └──────────── KEEP_ALIVE ◄────────┘

KEEP_ALIVE is the only IDLE state: the previous response has been sent
and no byte of the next request has arrived. Graceful shutdown closes
idle connections right away and waits for every other state to finish.

=============================================================================
TIMEOUTS
=============================================================================

    read_timeout    Whole request, counted from its first byte. Also bounds
                    the wait for the first byte on a new connection.
    idle_timeout    Wait for the next request on a keep-alive connection.
    write_timeout   Sending one response.

A timeout before any byte of a request simply ends the connection. A
timeout in the middle of a request raises TimeoutError so the server can
answer 408.

=============================================================================
"""

import socket
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import structlog


logger = structlog.get_logger(__name__)


class RequestTooLargeError(ValueError):
    """Raised when a request grows past max_request_size while reading."""


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    A client connection with buffered, timeout-bounded request reading.

    Usage:
        with Connection(sock, addr) as conn:
            while (raw := conn.read_request()) is not None:
                conn.send_response(handle(raw))
                conn.set_keep_alive()
    """

    socket: socket.socket
    address: Tuple

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW

    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    read_timeout: float = 5.0
    write_timeout: float = 10.0
    idle_timeout: float = 120.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    @property
    def is_idle(self) -> bool:
        """True while waiting for the next request of a keep-alive connection."""
        return self.state == ConnectionState.KEEP_ALIVE

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request (headers and body).

        Returns:
            The request bytes, or None when the connection ended before
            a request started (client closed, idle timeout, abort()).

        Raises:
            TimeoutError: The request started but did not complete in time.
            RequestTooLargeError: The request exceeds max_request_size.
        """
        first_byte_timeout = self.idle_timeout if self.requests_handled else self.read_timeout
        deadline: Optional[float] = None

        if self._buffer:
            with self._lock:
                self.state = ConnectionState.READING
            deadline = time.monotonic() + self.read_timeout

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv(deadline, first_byte_timeout)
                if not chunk:
                    return None

                if deadline is None:
                    with self._lock:
                        if self.state == ConnectionState.CLOSING:
                            return None
                        self.state = ConnectionState.READING
                    deadline = time.monotonic() + self.read_timeout

                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv(deadline, first_byte_timeout)
                if not chunk:
                    return None
                self._buffer += chunk
                self._check_size()

        except socket.timeout:
            if deadline is None:
                logger.debug("connection idle timeout", connection_id=self.id)
                return None
            raise TimeoutError("request read timeout") from None

        request_end = body_start + content_length
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]

        self.requests_handled += 1
        self.last_activity = time.monotonic()
        return request_data

    def _recv(self, deadline: Optional[float], first_byte_timeout: float) -> bytes:
        if deadline is None:
            timeout = first_byte_timeout
        else:
            timeout = deadline - time.monotonic()
            if timeout <= 0:
                raise socket.timeout("request read timeout")

        self.socket.settimeout(timeout)
        try:
            data = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""
        except socket.timeout:
            raise
        except OSError:
            # The socket was shut down or closed under us by abort()
            return b""

        self.last_activity = time.monotonic()
        return data

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLargeError(f"request too large: {len(self._buffer)} bytes")

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        for line in headers.decode("latin-1").lower().split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(int(line.split(":", 1)[1].strip()), 0)
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a serialized response.

        Returns:
            True if everything was sent, False if the client went away
            or the write timed out.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.settimeout(self.write_timeout)
            self.socket.sendall(data)
        except OSError as e:
            logger.warning("send failed", connection_id=self.id, error=str(e))
            return False

        self.last_activity = time.monotonic()
        return True

    def set_processing(self):
        self.state = ConnectionState.PROCESSING

    def set_keep_alive(self):
        """Mark the connection idle, waiting for its next request."""
        with self._lock:
            if self.state != ConnectionState.CLOSING:
                self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def abort(self, only_if_idle: bool = False) -> bool:
        """
        Wake up a blocked reader so the connection winds down.

        The pending recv() returns immediately and read_request() returns
        None. With only_if_idle, a connection that is not idle is left
        alone (checked under the state lock).

        Returns:
            True if the connection was aborted.
        """
        with self._lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return False
            if only_if_idle and not self.is_idle:
                return False
            self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        return True

    def close(self):
        """
        Close the connection: half-close, drain briefly, release the socket.

        Draining what the client still sends avoids a TCP reset that could
        destroy a response the client has not read yet.
        """
        with self._lock:
            if self.is_closed:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.25)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        with self._lock:
            self.state = ConnectionState.CLOSED

        logger.debug(
            "connection closed",
            connection_id=self.id,
            requests=self.requests_handled,
            age=round(self.age, 3),
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
