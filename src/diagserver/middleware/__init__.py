"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting request processing, composed around the router:

    RequestIDMiddleware   Assigns the request ID, sets X-Request-ID,
                          turns handler exceptions into a 500
    LoggingMiddleware     Binds the request logger, logs start/completion

Order matters. RequestIDMiddleware goes first (outermost) so the logger
bound by LoggingMiddleware already knows the ID.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog
from .request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
    "RequestIDMiddleware",
    "REQUEST_ID_HEADER",
]
