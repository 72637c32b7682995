"""
=============================================================================
REQUEST CONTEXT
=============================================================================

Per-request values (the request ID and a logger bound to the request)
travel with the request object itself, on HTTPRequest.context:

    ┌──────────────┐   with_request_id()  ┌──────────────┐   attach()   ┌──────────────┐
    │ EMPTY_CONTEXT│ ───────────────────► │ request_id   │ ───────────► │ request_id   │
    │              │                      │              │              │ logger(bound)│
    └──────────────┘                      └──────────────┘              └──────────────┘
      RequestIDMiddleware                                  LoggingMiddleware

Each step returns a NEW RequestContext; the parent is never modified, so
outer middleware keeps seeing exactly what it created.

=============================================================================
LOOKUPS NEVER FAIL
=============================================================================

A handler called outside the middleware pipeline (a unit test, a reused
helper) has no context. resolve_logger() and resolve_request_id() then
return the process-wide default logger and "" instead of raising. Logging
must never be the reason a request fails.

=============================================================================
CLIENT IP
=============================================================================

real_ip() prefers a header set by a trusted reverse proxy (X-Real-IP by
default) and falls back to the TCP peer address. The header is NOT
validated: anyone can send it, so the value is only meaningful when the
server sits behind a proxy that overwrites it.

=============================================================================
"""

from dataclasses import dataclass, replace
from typing import Any, Optional

import structlog


DEFAULT_LOGGER = structlog.get_logger("diagserver")

REAL_IP_HEADER = "X-Real-IP"


@dataclass(frozen=True)
class RequestContext:
    """
    Immutable request-scoped values.

    Attributes:
        request_id: ID assigned by RequestIDGenerator ("" if none yet)
        logger: Logger bound with the request's method, url, ip and
                request_id (None until LoggingMiddleware attaches one)
    """

    request_id: str = ""
    logger: Optional[Any] = None


EMPTY_CONTEXT = RequestContext()


def with_request_id(parent: Optional[RequestContext], request_id: str) -> RequestContext:
    """Return a copy of *parent* carrying *request_id*."""
    return replace(parent or EMPTY_CONTEXT, request_id=request_id)


def attach(
    parent: Optional[RequestContext],
    request_id: str,
    client_ip: str,
    method: str,
    url: str,
) -> RequestContext:
    """
    Return a copy of *parent* with a logger bound to this request.

    Every entry written through the returned logger carries:

        "request": {"method": ..., "url": ..., "ip": ..., "request_id": ...}
    """
    bound = DEFAULT_LOGGER.bind(
        request={
            "method": method,
            "url": url,
            "ip": client_ip,
            "request_id": request_id,
        }
    )
    return replace(parent or EMPTY_CONTEXT, request_id=request_id, logger=bound)


def resolve_logger(context: Any) -> Any:
    """The context's logger, or DEFAULT_LOGGER when there is none."""
    if isinstance(context, RequestContext) and context.logger is not None:
        return context.logger
    return DEFAULT_LOGGER


def resolve_request_id(context: Any) -> str:
    """The context's request ID, or "" when there is none."""
    if isinstance(context, RequestContext) and isinstance(context.request_id, str):
        return context.request_id
    return ""


def real_ip(request, header: str = REAL_IP_HEADER) -> str:
    """
    Best guess at the client address for *request*.

    Returns the trusted proxy header when present and non-empty,
    otherwise the transport peer ("ip:port") verbatim.
    """
    forwarded = request.get_header(header)
    if forwarded:
        return forwarded
    return request.remote_addr
