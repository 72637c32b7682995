"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the HTTP server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                               │
    │  • Binds host:port, owns the listening socket                       │
    │  • Runs the accept loop on a background thread                      │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ one worker thread per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                 │
    │  • Buffered request reading (TCP is a stream, not messages)         │
    │  • Read / idle / write timeouts                                     │
    │  • State machine, KEEP_ALIVE = idle                                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ registered in
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONNECTION TRACKER                             │
    │  • Live connections, close_idle(), wait_empty(timeout)              │
    │  • What graceful shutdown waits on                                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState, RequestTooLargeError
from .socket_server import ListenError, SocketServer
from .workers import ConnectionTracker

__all__ = [
    "Connection",
    "ConnectionState",
    "ConnectionTracker",
    "ListenError",
    "RequestTooLargeError",
    "SocketServer",
]
