"""
=============================================================================
URL ROUTING
=============================================================================

Maps request paths to handler functions.

=============================================================================
MATCHING RULES
=============================================================================

Routing is deliberately small: exact paths, plus subtrees for patterns
that end in "/".

    Registered: "/", "/hello", "/headers"

    GET /hello        → hello handler        (exact match)
    GET /hello/       → "/" handler          (no exact match, "/" subtree)
    GET /missing      → "/" handler          ("/" matches every path)

Among subtree patterns the longest one wins. Without any match the
router answers "404 page not found".

The method is NOT part of the route: each handler decides which methods
it accepts (see handlers.valid_method).

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .request import HTTPRequest
from .response import HTTPResponse, not_found


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A registered path and the handler serving it."""

    path: str
    handler: Handler
    name: Optional[str] = None

    @property
    def is_subtree(self) -> bool:
        return self.path.endswith("/")


class Router:
    """
    Path → handler dispatch.

    Usage:
        router = Router()

        @router.route("/hello")
        def hello(request):
            return ok("hello\\n")

        response = router.handle(request)
    """

    def __init__(self):
        self._routes: Dict[str, Route] = {}

    def add_route(self, path: str, handler: Handler, name: Optional[str] = None) -> Route:
        """
        Register *handler* for *path*.

        Raises:
            ValueError: If the path does not start with "/" or is taken.
        """
        if not path.startswith("/"):
            raise ValueError(f"route must start with '/': {path!r}")
        if path in self._routes:
            raise ValueError(f"route already registered: {path!r}")

        route = Route(path=path, handler=handler, name=name)
        self._routes[path] = route
        return route

    def route(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Decorator form of add_route()."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, name)
            return handler
        return decorator

    def match(self, path: str) -> Optional[Route]:
        """Find the route for *path*: exact first, then longest subtree."""
        route = self._routes.get(path)
        if route is not None:
            return route

        best: Optional[Route] = None
        for candidate in self._routes.values():
            if candidate.is_subtree and path.startswith(candidate.path):
                if best is None or len(candidate.path) > len(best.path):
                    best = candidate
        return best

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch *request* to its handler, or answer 404."""
        route = self.match(request.path)
        if route is None:
            return not_found()
        return route.handler(request)

    def routes(self) -> List[Route]:
        return sorted(self._routes.values(), key=lambda r: r.path)
