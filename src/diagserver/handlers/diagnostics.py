"""
=============================================================================
DIAGNOSTIC HANDLERS
=============================================================================

Pages that echo back what the server saw of a request. Useful for
checking what a proxy or load balancer in front of the server adds or
strips.

    ┌──────────────┬──────────────────────────────────────────────────────┐
    │ /            │ Index page (HTML); any unknown path → 404            │
    │ /hello       │ "hello" in plain text                                │
    │ /hellohtml   │ "hello" as an HTML page                              │
    │ /headers     │ Request headers, sorted by name (HTML)               │
    │ /remote      │ Peer address plus the usual client-IP proxy headers  │
    │ /request     │ The request as received                              │
    │ /build       │ Modification time of the running program             │
    └──────────────┴──────────────────────────────────────────────────────┘

Every handler accepts GET only (see valid_method) and logs through the
request's bound logger, so its entries carry the request ID.

=============================================================================
"""

from http import HTTPStatus
from typing import List, Optional

from ..context import resolve_logger
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, http_error, not_found
from ..http.router import Router
from ..templates import MSG_TEMPLATE_ERROR, Safe, TemplateError, Templates, escape
from .utils import dump_request, executable_mtime, valid_method


ROOT_PAGE = "root.html"
HELLO_PAGE = "hello.html"
HEADERS_PAGE = "headers.html"

HEADERS_TITLE = "Request Headers"

# Headers commonly set by proxies and CDNs with the original client address
CLIENT_IP_HEADERS = (
    "Cf-Connecting-Ip",
    "X-Client-Ip",
    "X-Forwarded-For",
    "X-Real-Ip",
)

BUILD_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def header_rows(request: HTTPRequest) -> Safe:
    """Table rows for the headers page, sorted by header name."""
    rows: List[str] = []
    for name in sorted(request.headers):
        values = ", ".join(escape(v) for v in request.headers[name])
        rows.append(f"    <tr><td>{escape(name)}</td><td>{values}</td></tr>")
    return Safe("\n".join(rows))


class Handler:
    """
    The diagnostic pages, sharing the application name and templates.

    Usage:
        handler = Handler("Diagnostic Web Server", Templates.load())
        handler.register(router)
    """

    def __init__(self, app_name: str, templates: Optional[Templates]):
        self.app_name = app_name
        self.templates = templates

    def register(self, router: Router):
        router.add_route("/", self.root, name="root")
        router.add_route("/hello", self.hello, name="hello")
        router.add_route("/hellohtml", self.hello_html, name="hellohtml")
        router.add_route("/headers", self.headers, name="headers")
        router.add_route("/remote", self.remote, name="remote")
        router.add_route("/request", self.request, name="request")
        router.add_route("/build", self.build, name="build")

    def _render(self, request: HTTPRequest, name: str, **data) -> HTTPResponse:
        """Render a page, or the fixed 500 message if that fails."""
        try:
            if self.templates is None:
                raise TemplateError("no templates loaded")
            page = self.templates.render(name, **data)
        except TemplateError as e:
            resolve_logger(request.context).error("unable to render template", error=str(e))
            return http_error(MSG_TEMPLATE_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR)
        return ResponseBuilder().html(page).build()

    def root(self, request: HTTPRequest) -> HTTPResponse:
        logger = resolve_logger(request.context)

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        # "/" is also the catch-all for unknown paths
        if request.path != "/":
            logger.error("invalid path")
            return not_found()

        return self._render(request, ROOT_PAGE, title=self.app_name)

    def hello(self, request: HTTPRequest) -> HTTPResponse:
        logger = resolve_logger(request.context)
        logger.debug("hello")

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        return ResponseBuilder().text("hello\n").no_cache().build()

    def hello_html(self, request: HTTPRequest) -> HTTPResponse:
        logger = resolve_logger(request.context)
        logger.debug("hello html")

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        response = self._render(request, HELLO_PAGE)
        if response.status == HTTPStatus.OK:
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        return response

    def headers(self, request: HTTPRequest) -> HTTPResponse:
        logger = resolve_logger(request.context)
        logger.debug("headers", headers=request.headers)

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        return self._render(
            request, HEADERS_PAGE, title=HEADERS_TITLE, rows=header_rows(request)
        )

    def remote(self, request: HTTPRequest) -> HTTPResponse:
        """
        Show the transport peer and any client-IP proxy headers.

        RemoteAddr is the proxy's address, not the client's, when the
        server runs behind one.
        """
        logger = resolve_logger(request.context)
        logger.debug("remote")

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        lines = [f"RemoteAddr: {request.remote_addr}"]
        for name in CLIENT_IP_HEADERS:
            value = request.get_header(name)
            if value:
                lines.append(f"{name}: {value}")

        return ResponseBuilder().text("\n".join(lines) + "\n").build()

    def request(self, request: HTTPRequest) -> HTTPResponse:
        logger = resolve_logger(request.context)
        logger.debug("request")

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        return ResponseBuilder().text(dump_request(request) + "\n").build()

    def build(self, request: HTTPRequest) -> HTTPResponse:
        logger = resolve_logger(request.context)

        rejected = valid_method(request, "GET")
        if rejected is not None:
            logger.error("invalid method")
            return rejected

        try:
            built = executable_mtime()
        except OSError as e:
            logger.error("unable to stat executable", error=str(e))
            return http_error(MSG_TEMPLATE_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR)

        return (ResponseBuilder()
            .text(built.strftime(BUILD_TIME_FORMAT) + "\n")
            .no_cache()
            .build())
