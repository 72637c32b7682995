"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the diagnostic server.

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
    │      └── python -m diagserver --addr :3000                         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── DIAG_ADDR=:3000 python -m diagserver                      │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ADDRESSES
=============================================================================

The listen address is written "[host]:port", the same way most servers
and proxies spell it:

    localhost:8080      Loopback only (the default)
    :8080               All interfaces
    [::1]:8080          IPv6 loopback
    127.0.0.1:0         Ephemeral port chosen by the OS (tests)

=============================================================================
"""

import os
from dataclasses import dataclass, replace
from typing import Tuple

from .log import LOG_TYPES, log_level


DEFAULT_ADDR = "localhost:8080"


def parse_addr(addr: str) -> Tuple[str, int]:
    """
    Split a "[host]:port" address into (host, port).

    An empty host means "all interfaces". IPv6 hosts must be bracketed.

    Raises:
        ValueError: If the port is missing, not a number, or out of range.
    """
    host, sep, port_str = addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address: {addr!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 host must be bracketed: {addr!r}")

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"invalid port in address: {addr!r}") from None

    if not 0 <= port < 65536:
        raise ValueError(f"port out of range in address: {addr!r}")

    return host, port


@dataclass
class ServerConfig:
    """
    Configuration for the diagnostic server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    TIMEOUTS
    - read_timeout, write_timeout, idle_timeout
    - shutdown_timeout, accept_poll_interval

    HTTP SETTINGS
    - keep_alive, max_request_size, real_ip_header

    REQUEST IDS
    - request_id_prefix_length, request_id_width

    LOGGING
    - log_file, log_level, log_type, log_source

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "localhost"
    """Host to bind to. "" binds all interfaces."""

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """Bytes requested from recv() per call."""

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 5.0
    """Seconds allowed to read one complete request."""

    write_timeout: float = 10.0
    """Seconds allowed to write one response."""

    idle_timeout: float = 120.0
    """Seconds a keep-alive connection may wait for its next request."""

    shutdown_timeout: float = 10.0
    """
    Deadline for graceful shutdown. In-flight requests get this long to
    finish before shutdown gives up and reports a timeout.
    """

    accept_poll_interval: float = 0.5
    """How often the accept loop wakes up to check for shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow several requests on one TCP connection."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """Largest request (headers + body) accepted, in bytes."""

    real_ip_header: str = "X-Real-IP"
    """
    Header set by a trusted reverse proxy with the original client IP.
    Its value is taken as-is: only expose the server behind such a proxy.
    """

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST IDS
    # ─────────────────────────────────────────────────────────────────────

    request_id_prefix_length: int = 6
    """Length of the random per-process request ID prefix."""

    request_id_width: int = 10
    """Zero-padded width of the request ID sequence number."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_file: str = ""
    """Append logs to this file. "" logs to stderr."""

    log_level: str = "info"
    """One of debug, info, warn, error (case-insensitive)."""

    log_type: str = "json"
    """'json' (machine-parseable) or 'text' (human-readable)."""

    log_source: bool = False
    """Add the source file, function and line to each log entry."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    app_name: str = "Diagnostic Web Server"
    """Title shown on the root page."""

    server_name: str = "diagserver/1.0"
    """Value of the Server response header."""

    @property
    def addr(self) -> str:
        """The listen address in "[host]:port" form."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @classmethod
    def from_addr(cls, addr: str, **overrides) -> "ServerConfig":
        """
        Create configuration from a "[host]:port" address.

        Example:
            config = ServerConfig.from_addr(":8080", shutdown_timeout=5.0)
        """
        host, port = parse_addr(addr)
        return cls(host=host, port=port, **overrides)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        DIAG_ADDR               Listen address (default: localhost:8080)
        DIAG_LOG_FILE           Log file (default: stderr)
        DIAG_LOG_LEVEL          debug|info|warn|error (default: info)
        DIAG_LOG_TYPE           json|text (default: json)
        DIAG_SHUTDOWN_TIMEOUT   Graceful shutdown deadline in seconds (default: 10)

        =====================================================================
        """
        defaults = cls()
        config = cls.from_addr(os.getenv("DIAG_ADDR", DEFAULT_ADDR))
        return replace(
            config,
            log_file=os.getenv("DIAG_LOG_FILE", defaults.log_file),
            log_level=os.getenv("DIAG_LOG_LEVEL", defaults.log_level),
            log_type=os.getenv("DIAG_LOG_TYPE", defaults.log_type),
            shutdown_timeout=float(
                os.getenv("DIAG_SHUTDOWN_TIMEOUT", str(defaults.shutdown_timeout))
            ),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called eagerly by the server constructor so a bad value fails at
        startup instead of on the first request.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        for name in ("read_timeout", "write_timeout", "idle_timeout",
                     "shutdown_timeout", "accept_poll_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.request_id_prefix_length < 1:
            raise ValueError("request_id_prefix_length must be >= 1")

        if self.request_id_width < 1:
            raise ValueError("request_id_width must be >= 1")

        if self.log_type not in LOG_TYPES:
            raise ValueError(f"invalid logtype: {self.log_type}")

        log_level(self.log_level)
