"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket and runs the accept loop.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    1. socket()    Create the socket
    2. bind()      Reserve host:port          ─┐
    3. listen()    Start queueing connections  ├─ bind()
    4. accept()    One new socket per client  ─── serve(), on its own thread
    5. close()     Stop accepting, release the port

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Owned by SocketServer only
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Client 1  │         │ Client 2  │         │ Client 3  │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
STOPPING THE ACCEPT LOOP
=============================================================================

accept() blocks, so the listening socket gets a short timeout
(accept_poll_interval): the loop wakes up regularly and notices that
close() cleared the running flag. close() additionally shuts the socket
down, which makes a blocked accept() fail at once on most platforms.

An accept error while running is NOT the normal "listener closed"
condition; it is reported to the on_error callback.

=============================================================================
"""

import socket
import threading
from typing import Callable, Optional, Tuple

import structlog

from ..config import ServerConfig


logger = structlog.get_logger(__name__)


class ListenError(OSError):
    """Raised when the listening socket cannot be bound."""


class SocketServer:
    """
    TCP listener with a background accept loop.

    Usage:
        server = SocketServer(config)
        server.bind()
        server.serve(handle_client, on_error)
        ...
        server.close()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port when config.port is 0."""
        if self._socket is not None:
            sockname = self._socket.getsockname()
            return sockname[0], sockname[1]
        return self.config.host, self.config.port

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Rebind right after a restart despite connections in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.config.accept_poll_interval)
        return sock

    def bind(self):
        """
        Create, bind and listen.

        Raises:
            ListenError: If the address cannot be bound (in use, no
                permission, unknown host).
        """
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            raise ListenError(f"listen {self.config.addr}: {e}") from e

        self._socket = sock
        logger.debug("socket bound", address=self.address)

    def serve(
        self,
        connection_handler: Callable[[socket.socket, Tuple], None],
        on_error: Callable[[Exception], None],
    ):
        """
        Start the accept loop on a daemon thread.

        connection_handler is called on the accept thread for every new
        client and must hand it off quickly. If it raises, the client
        socket is closed, the error goes to on_error and the loop stops.
        """
        if self._socket is None:
            raise RuntimeError("serve() called before bind()")

        self._running = True
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler, on_error),
            name="diagserver-accept",
            daemon=True,
        )
        self._thread.start()

    def _accept_loop(
        self,
        connection_handler: Callable[[socket.socket, Tuple], None],
        on_error: Callable[[Exception], None],
    ):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    on_error(e)
                break

            logger.debug("accepted connection", client=client_address[:2])
            try:
                connection_handler(client_socket, client_address)
            except Exception as e:
                client_socket.close()
                logger.error("failed to hand off connection", client=client_address[:2], error=str(e))
                if self._running:
                    on_error(e)
                break

    def close(self):
        """
        Stop accepting and release the listening socket.

        After close() returns, new connection attempts are refused. Safe to
        call more than once.
        """
        self._running = False

        if self._socket is not None:
            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.config.accept_poll_interval * 4)
        self._thread = None

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
