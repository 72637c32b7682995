"""
=============================================================================
DIAGSERVER - DIAGNOSTIC HTTP SERVER
=============================================================================

A small HTTP/1.1 server on raw sockets that echoes what it sees of each
request: headers, peer address, the raw request. Around that sit the
pieces a real service needs:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request_id.py   Process-unique request IDs: random prefix + counter │
    │ context.py      Request-scoped context: ID and bound logger         │
    │ server.py       Lifecycle: listen → serve → bounded shutdown        │
    │ lifecycle.py    SIGINT/SIGTERM or cancellation → graceful shutdown  │
    │ log.py          structlog setup, JSON or text, stderr or file       │
    │ config.py       ServerConfig with env overrides and validation      │
    │ core/           Sockets, connections, connection tracking           │
    │ http/           Request parsing, responses, routing                 │
    │ middleware/     Request ID and request logging middleware           │
    │ handlers/       The diagnostic pages                                │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from diagserver import ServerConfig, create_app, await_shutdown

    server = create_app(ServerConfig.from_addr("localhost:8080")).start()
    await_shutdown(server)

=============================================================================
"""

__version__ = "1.0.0"

from .app import create_app
from .config import ServerConfig
from .context import RequestContext, resolve_logger, resolve_request_id
from .lifecycle import ShutdownTrigger, await_shutdown
from .request_id import RequestIDGenerator
from .server import HTTPServer, ServerState, ShutdownTimeoutError

__all__ = [
    "HTTPServer",
    "RequestContext",
    "RequestIDGenerator",
    "ServerConfig",
    "ServerState",
    "ShutdownTimeoutError",
    "ShutdownTrigger",
    "__version__",
    "await_shutdown",
    "create_app",
    "resolve_logger",
    "resolve_request_id",
]
