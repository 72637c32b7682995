"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Builds HTTP/1.1 responses and serializes them to bytes.

=============================================================================
HTTP/1.1 RESPONSE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n                          ← Status line
    Content-Type: text/plain; charset=utf-8\r\n  ← Headers
    Content-Length: 6\r\n
    X-Request-ID: aB3xYz0000000001\r\n
    \r\n                                         ← Empty line
    hello\n                                      ← Body

Content-Length, Date and Server are filled in by to_bytes() when the
handler did not set them.

=============================================================================
ERRORS
=============================================================================

Error bodies are plain text with a trailing newline and nosniff, the
shape most Go/nginx style servers use:

    HTTP/1.1 404 Not Found
    Content-Type: text/plain; charset=utf-8
    X-Content-Type-Options: nosniff

    404 page not found

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Dict, Optional, Union


DEFAULT_SERVER_NAME = "diagserver/1.0"

TEXT_PLAIN = "text/plain; charset=utf-8"
TEXT_HTML = "text/html; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response.

    Attributes:
        status: HTTP status (stdlib http.HTTPStatus)
        headers: Response headers, one value per name
        body: Response body bytes
        version: HTTP version for the status line
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 405 Method Not Allowed" """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def get_header(self, name: str, default: str = "") -> str:
        """Header value by case-insensitive name."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Serialize to wire format, adding Content-Length, Date and Server."""
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n" + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

    Usage:
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .text("hello\\n")
            .no_cache()
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = TEXT_PLAIN) -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, TEXT_HTML)

    def no_cache(self) -> "ResponseBuilder":
        """Forbid caching; the diagnostic pages must always be live."""
        self._headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP date (RFC 7231).

    Example: "Sun, 06 Nov 1994 08:49:37 GMT"

    Month and day names are spelled out here rather than taken from
    strftime, which follows the process locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """200 OK with a text (default) or raw body."""
    builder = ResponseBuilder()
    if isinstance(body, str):
        builder.text(body, content_type or TEXT_PLAIN)
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def no_content(headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).headers(headers or {}).build()


def http_error(message: str, status: Union[HTTPStatus, int]) -> HTTPResponse:
    """
    Plain-text error response.

    The body is *message* plus a newline; nosniff keeps browsers from
    guessing another content type for it.
    """
    return (ResponseBuilder()
        .status(status)
        .text(message + "\n")
        .header("X-Content-Type-Options", "nosniff")
        .build())


def not_found() -> HTTPResponse:
    return http_error("404 page not found", HTTPStatus.NOT_FOUND)


def method_not_allowed(method: str, allow: str) -> HTTPResponse:
    response = http_error(f"{method} Method Not Allowed", HTTPStatus.METHOD_NOT_ALLOWED)
    return response.set_header("Allow", allow)


def internal_error(message: Optional[str] = None) -> HTTPResponse:
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    return http_error(message or status.phrase, status)
