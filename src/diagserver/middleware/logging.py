"""
=============================================================================
REQUEST LOGGING MIDDLEWARE
=============================================================================

Attaches a request-bound logger to the request context and writes one
entry when a request arrives and one when it completes.

Every entry written through the bound logger, by this middleware or by
a handler calling resolve_logger(request.context), carries a "request"
group:

    {"event": "request received", "level": "info",
     "request": {"method": "GET", "url": "/hello", "ip": "203.0.113.7",
                 "request_id": "aB3xYz0000000042"}, ...}

    {"event": "request completed", "status": 200, "bytes": 6,
     "duration_ms": 0.41, "request": {...}, ...}

so all lines of one request can be found by its request_id.

=============================================================================
"""

import time
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from ..context import REAL_IP_HEADER, attach, real_ip, resolve_request_id
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from .base import Middleware, NextHandler


@dataclass
class RequestLog:
    """Outcome of one request, as logged on completion."""

    status: int
    bytes: int
    duration_ms: float

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry


class LoggingMiddleware(Middleware):
    """
    Bind a per-request logger and log request start and completion.

    Args:
        real_ip_header: Trusted proxy header holding the client IP.
        skip_paths: Paths whose start/completion entries are not written
            (health checks). Their requests still get a bound logger.
    """

    def __init__(
        self,
        real_ip_header: str = REAL_IP_HEADER,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        self.real_ip_header = real_ip_header
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        context = attach(
            request.context,
            request_id=resolve_request_id(request.context),
            client_ip=real_ip(request, self.real_ip_header),
            method=request.method,
            url=request.url,
        )
        request = request.with_context(context)
        log = context.logger
        quiet = request.path in self.skip_paths

        if not quiet:
            log.info("request received")

        start_time = time.perf_counter()
        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            log.error(
                "request failed",
                error=f"{type(e).__name__}: {e}",
                duration_ms=round(duration_ms, 2),
            )
            raise

        if not quiet:
            entry = RequestLog(
                status=int(response.status),
                bytes=len(response.body),
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )
            log.info("request completed", **entry.to_dict())

        return response
