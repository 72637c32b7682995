"""
=============================================================================
REQUEST HANDLERS
=============================================================================

A handler is any callable taking an HTTPRequest and returning an
HTTPResponse:

    def hello(request: HTTPRequest) -> HTTPResponse:
        return ok("hello\\n")

The diagnostic pages live on one class, Handler, because they share
configuration (the application name and the loaded templates).
Handler.register() adds them all to a router.

=============================================================================
"""

from .diagnostics import CLIENT_IP_HEADERS, Handler, header_rows
from .utils import dump_request, executable_mtime, valid_method

__all__ = [
    "CLIENT_IP_HEADERS",
    "Handler",
    "dump_request",
    "executable_mtime",
    "header_rows",
    "valid_method",
]
