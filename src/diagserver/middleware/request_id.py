"""
Request ID middleware.

Outermost middleware: assigns every request an ID from the process's
RequestIDGenerator, puts it on the request context and echoes it in the
X-Request-ID response header. Because it sits outside everything else,
even a handler that blows up produces a 500 that carries the ID, so a
user reporting an error can quote it.
"""

import structlog

from ..context import with_request_id
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, internal_error
from ..request_id import RequestIDGenerator
from .base import Middleware, NextHandler


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(Middleware):
    """Assign a request ID and set the X-Request-ID response header."""

    def __init__(self, generator: RequestIDGenerator, header: str = REQUEST_ID_HEADER):
        self.generator = generator
        self.header = header

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = self.generator.next()
        request = request.with_context(with_request_id(request.context, request_id))

        try:
            response = next(request)
        except Exception:
            logger.exception("handler failed", request_id=request_id)
            response = internal_error()

        response.headers[self.header] = request_id
        return response
