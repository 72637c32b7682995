"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware wraps the route handler, chain-of-responsibility style. Each
middleware sees the request on the way in and the response on the way
out, and may short-circuit by not calling next.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Request ────────────────────────────────────────────────►         │
    │                                                                     │
    │   ┌──────────────┐    ┌──────────────┐    ┌──────────────┐          │
    │   │  RequestID   │───►│   Logging    │───►│   Router /   │          │
    │   │  assign ID   │    │ bind logger  │    │   Handler    │          │
    │   └──────┬───────┘    └──────┬───────┘    └──────┬───────┘          │
    │          ▲                   ▲                   │                  │
    │   set X-Request-ID    log "request completed"    │                  │
    │                                                                     │
    │   ◄──────────────────────────────────────────────── Response        │
    └─────────────────────────────────────────────────────────────────────┘

The first middleware added is the outermost one.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List

import structlog

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = structlog.get_logger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    Example:
        class TimingMiddleware(Middleware):
            def __call__(self, request, next):
                start = time.monotonic()
                response = next(request)
                response.headers["X-Elapsed"] = f"{time.monotonic() - start:.3f}"
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process a request.

        Args:
            request: The incoming request. To hand a changed request down
                the chain, pass a copy (request.with_context(...)).
            next: The rest of the chain.

        Returns:
            The response.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered middleware, composed around a final handler by wrap().

    Usage:
        pipeline = MiddlewarePipeline()
        pipeline.add(RequestIDMiddleware(generator))
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(router.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug("added middleware", middleware=middleware.name)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around *handler*.

        Wrapping goes in reverse so the first middleware added ends up
        outermost:

            add(A), add(B) → A(B(handler))
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    @staticmethod
    def _create_wrapped_handler(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        # A separate function so each closure captures its own pair
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
