"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the socket server, connection handling, middleware and router
together, and owns the server's lifecycle.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        │  (lifecycle)    │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────────┐  ┌──────────────┐       │
    │    │ SocketServer │    │ConnectionTracker │  │    Router    │       │
    │    │ accept loop  │    │ live connections │  │  + handlers  │       │
    │    └──────┬───────┘    └──────────────────┘  └──────────────┘       │
    │           │ one daemon thread per connection                        │
    │           ▼                                                         │
    │    ┌──────────────┐    ┌─────────────────────────────────────┐      │
    │    │  Connection  │───►│ RequestID → Logging → Router        │      │
    │    └──────────────┘    └─────────────────────────────────────┘      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    CREATED ──listen()──► LISTENING ──serve()──► SERVING
       │                     │                      │
       │ bind fails          │                      │ shutdown()
       ▼                     ▼                      ▼
    STOPPED ◄────────────────┴──────────────── SHUTTING_DOWN

    listen()    Bind the socket. A bind failure is fatal: STOPPED plus
                ListenError.
    serve()     Start the accept loop on a background thread, so the
                caller's thread stays free to wait for a shutdown trigger.
    shutdown()  Graceful and bounded:
                  1. Close the listener: new connections are refused
                  2. Close idle keep-alive connections
                  3. Wait for in-flight requests, up to the deadline
                  4. STOPPED; ShutdownTimeoutError if requests were left
                A second call is a no-op.

Accept-loop failures while SERVING (anything but the listener being
closed by shutdown) are fatal: by default the process exits with
ExitCode.SERVER, so a server that stopped accepting never keeps running
silently.

=============================================================================
"""

import os
import socket
import threading
from enum import Enum
from http import HTTPStatus
from typing import Callable, Optional, Tuple

import structlog

from .config import ServerConfig
from .core import (
    Connection,
    ConnectionTracker,
    ListenError,
    RequestTooLargeError,
    SocketServer,
)
from .exitcodes import ExitCode
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    Router,
    http_error,
    internal_error,
    parse_request,
)
from .middleware import Middleware, MiddlewarePipeline


logger = structlog.get_logger(__name__)


class ShutdownTimeoutError(TimeoutError):
    """Raised when in-flight requests outlive the shutdown deadline."""


class ServerState(Enum):
    CREATED = "created"
    LISTENING = "listening"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def _exit_on_serve_error(error: Exception):
    logger.error("failed to serve", error=str(error))
    os._exit(ExitCode.SERVER)


class HTTPServer:
    """
    Thread-per-connection HTTP/1.1 server with graceful shutdown.

    Usage:
        server = HTTPServer(ServerConfig(port=8080))
        server.use(RequestIDMiddleware(RequestIDGenerator()))

        @server.route("/hello")
        def hello(request):
            return ok("hello\\n")

        server.start()
        ...
        server.shutdown()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        on_serve_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Args:
            config: Server configuration. Validated here (fail fast).
            on_serve_error: Called with a fatal accept-loop error, including
                a connection that could not be handed to a worker.
                Defaults to logging it and exiting with ExitCode.SERVER.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._connections = ConnectionTracker()

        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        self._on_serve_error = on_serve_error or _exit_on_serve_error

        self._state = ServerState.CREATED
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()
        self._address: Optional[Tuple[str, int]] = None

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware. The first one added is the outermost."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    def route(self, path: str, name: Optional[str] = None):
        """Register a handler for *path* (decorator)."""
        return self._router.route(path, name)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port), available once listening."""
        return self._address

    @property
    def addr(self) -> str:
        """The bound address as "host:port" ("[host]:port" for IPv6)."""
        if self._address is None:
            return self.config.addr
        host, port = self._address
        return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the server reaches STOPPED. Returns False on timeout."""
        return self._stopped.wait(timeout)

    def _set_state(self, state: ServerState):
        self._state = state
        if state == ServerState.STOPPED:
            self._stopped.set()
        logger.debug("server state", state=state.value)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def listen(self) -> "HTTPServer":
        """
        Bind the listening socket.

        Raises:
            ListenError: If binding fails. The server is then STOPPED.
            RuntimeError: If the server is not in the CREATED state.
        """
        with self._state_lock:
            if self._state != ServerState.CREATED:
                raise RuntimeError(f"cannot listen in state {self._state.value}")
            try:
                self._socket_server.bind()
            except ListenError:
                self._set_state(ServerState.STOPPED)
                raise
            self._address = self._socket_server.address
            self._set_state(ServerState.LISTENING)
        return self

    def serve(self) -> "HTTPServer":
        """
        Start accepting connections on a background thread.

        Raises:
            RuntimeError: If the server is not LISTENING.
        """
        with self._state_lock:
            if self._state != ServerState.LISTENING:
                raise RuntimeError(f"cannot serve in state {self._state.value}")
            self._handler = self._middleware.wrap(self._router.handle)
            self._socket_server.serve(self._accept, self._serve_failed)
            self._set_state(ServerState.SERVING)
        return self

    def start(self) -> "HTTPServer":
        """listen() then serve(). Logs the address actually bound."""
        self.listen()
        self.serve()
        logger.info("started server", addr=self.addr)
        return self

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop the server gracefully.

        Args:
            timeout: Seconds to wait for in-flight requests. Defaults to
                config.shutdown_timeout.

        Raises:
            ShutdownTimeoutError: If requests were still running at the
                deadline. The server is STOPPED regardless.
        """
        with self._state_lock:
            if self._state in (ServerState.SHUTTING_DOWN, ServerState.STOPPED):
                return
            previous = self._state
            self._set_state(ServerState.SHUTTING_DOWN)

        if timeout is None:
            timeout = self.config.shutdown_timeout

        # New connections are refused from here on
        self._socket_server.close()

        if previous != ServerState.SERVING:
            self._set_state(ServerState.STOPPED)
            return

        self._connections.close_idle()
        drained = self._connections.wait_empty(
            timeout, poll=self._connections.close_idle
        )
        remaining = len(self._connections)

        self._set_state(ServerState.STOPPED)

        if not drained:
            raise ShutdownTimeoutError(
                f"shutdown deadline of {timeout}s exceeded with "
                f"{remaining} connection(s) still active"
            )

    def _serve_failed(self, error: Exception):
        if self._state == ServerState.SERVING:
            self._on_serve_error(error)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _accept(self, client_socket: socket.socket, client_address: Tuple):
        """Called on the accept thread: register the connection, start its worker."""
        if self._state != ServerState.SERVING:
            client_socket.close()
            return

        conn = Connection(
            socket=client_socket,
            address=client_address,
            buffer_size=self.config.buffer_size,
            read_timeout=self.config.read_timeout,
            write_timeout=self.config.write_timeout,
            idle_timeout=self.config.idle_timeout,
            max_request_size=self.config.max_request_size,
        )
        self._connections.add(conn)

        worker = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"diagserver-conn-{conn.id}",
            daemon=True,
        )
        try:
            worker.start()
        except Exception:
            self._connections.discard(conn)
            raise

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (worker thread).

            read → parse → middleware + router → send → repeat or close

        The connection is closed after the response once shutdown has
        started, and removed from the tracker when the loop ends.
        """
        try:
            with conn:
                while True:
                    if not self._process_request(conn):
                        break
        finally:
            self._connections.discard(conn)

    def _process_request(self, conn: Connection) -> bool:
        """Handle one request. Returns True to keep the connection open."""
        try:
            raw_request = conn.read_request()
        except TimeoutError:
            self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
            return False
        except RequestTooLargeError:
            self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
            return False
        except Exception:
            logger.exception("connection error", connection_id=conn.id)
            return False

        if raw_request is None:
            return False

        try:
            request = parse_request(raw_request, conn.address, self.config.max_request_size)
        except HTTPParseError as e:
            logger.debug("bad request", connection_id=conn.id, error=str(e))
            self._send_error(conn, HTTPStatus(e.status_code))
            return False

        conn.set_processing()

        try:
            response = self._handler(request)
        except Exception:
            logger.exception("handler error", connection_id=conn.id)
            response = internal_error()

        keep_alive = (
            request.is_keep_alive
            and self.config.keep_alive
            and self._state == ServerState.SERVING
        )
        if keep_alive:
            response.headers.setdefault("Connection", "keep-alive")
            response.headers.setdefault("Keep-Alive", f"timeout={int(self.config.idle_timeout)}")
        else:
            response.headers["Connection"] = "close"

        if not conn.send_response(response.to_bytes(self.config.server_name)):
            return False

        if not keep_alive:
            return False

        conn.set_keep_alive()
        return True

    def _send_error(self, conn: Connection, status: HTTPStatus):
        """Answer a request that never reached the handlers, then close."""
        response = http_error(f"{int(status)} {status.phrase}", status)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))
