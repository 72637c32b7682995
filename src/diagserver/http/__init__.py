"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Translates between raw TCP bytes and structured HTTP messages.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   b"GET /hello HTTP/1.1\r\n..."  →  HTTPRequest(method="GET", ...)  │
    │   Canonical, multi-valued headers; request-scoped context slot      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE BUILDER (response.py)                                      │
    │   ResponseBuilder().text("hello\n").no_cache().build()              │
    │   Plain-text errors: http_error(), not_found(), internal_error()    │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ROUTER (router.py)                                                  │
    │   Exact paths plus "/"-terminated subtrees                          │
    └─────────────────────────────────────────────────────────────────────┘

Status codes come from the standard library's http.HTTPStatus.

=============================================================================
"""

from http import HTTPStatus

from .request import (
    HTTPParseError,
    HTTPRequest,
    RequestParser,
    canonical_header_key,
    parse_request,
)
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    http_error,
    internal_error,
    method_not_allowed,
    no_content,
    not_found,
    ok,
)
from .router import Handler, Route, Router

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "canonical_header_key",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "HTTPStatus",
    "format_http_date",
    "ok",
    "no_content",
    "http_error",
    "not_found",
    "method_not_allowed",
    "internal_error",

    # Routing
    "Handler",
    "Route",
    "Router",
]
