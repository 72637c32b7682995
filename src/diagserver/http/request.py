"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes of one request into an HTTPRequest.

=============================================================================
HTTP/1.1 REQUEST FORMAT (RFC 7230)
=============================================================================

    GET /headers?verbose=1 HTTP/1.1\r\n      ← Request line
    Host: localhost:8080\r\n                 ← Headers
    X-Real-IP: 203.0.113.7\r\n
    \r\n                                     ← Empty line
    [body]                                   ← Content-Length bytes

=============================================================================
HEADER NAMES
=============================================================================

Header names are case-insensitive. We store them in canonical form
(first letter and every letter after a hyphen upper-cased, the rest
lower-cased) so that both lookups and display are stable:

    x-real-ip       → X-Real-Ip
    CONTENT-TYPE    → Content-Type
    user-agent      → User-Agent

Each name maps to a LIST of values, because a header may legally be
repeated and the diagnostic pages show every occurrence.

=============================================================================
"""

import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

if TYPE_CHECKING:
    from ..context import RequestContext


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code to answer with:

        400 Bad Request                 - Malformed request syntax
        413 Payload Too Large           - Request exceeds size limit
        505 HTTP Version Not Supported  - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def canonical_header_key(name: str) -> str:
    """Return the canonical form of a header name ("x-real-ip" → "X-Real-Ip")."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.strip().split("-"))


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         HTTP method ("GET", "POST", ...)
        path:           Decoded path without the query string
        target:         The request URI exactly as sent ("/a%20b?x=1")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Canonical name → list of values
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        body:           Raw body bytes (Content-Length of them)
        client_address: Transport peer (ip, port)
        raw:            The original bytes, for debugging
        context:        Request-scoped context (request ID, bound logger),
                        set by the middleware. None outside the pipeline.

    =========================================================================
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"

    headers: Dict[str, List[str]] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: Tuple = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    context: Optional["RequestContext"] = field(default=None, repr=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def url(self) -> str:
        """The request URI as sent, falling back to the path."""
        return self.target or self.path

    @property
    def remote_addr(self) -> str:
        """
        The transport peer as "ip:port" ("[ip]:port" for IPv6).

        Empty when the request did not come from a socket (unit tests).
        """
        host, port = self.client_address[0], self.client_address[1]
        if not host and not port:
            return ""
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    @property
    def host(self) -> str:
        return self.get_header("Host")

    @property
    def content_length(self) -> int:
        """Content-Length as an int, 0 if missing or invalid."""
        try:
            return int(self.get_header("Content-Length", "0"))
        except ValueError:
            return 0

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 keeps alive unless "Connection: close";
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        tokens = {
            token.strip().lower()
            for value in self.get_header_values("Connection")
            for token in value.split(",")
        }
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """First value of a header (case-insensitive), or default."""
        values = self.headers.get(canonical_header_key(name))
        return values[0] if values else default

    def get_header_values(self, name: str) -> List[str]:
        """All values of a header (case-insensitive)."""
        return list(self.headers.get(canonical_header_key(name), []))

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def with_context(self, context: "RequestContext") -> "HTTPRequest":
        """
        Return a shallow copy of this request carrying *context*.

        The original request is left untouched, so a middleware never
        changes what an outer middleware sees.
        """
        return replace(self, context=context)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    Usage:
        parser = RequestParser(max_request_size=1024 * 1024)
        request = parser.parse(raw_bytes, ("127.0.0.1", 54321))
    """

    # token = 1*tchar (RFC 7230 section 3.2.6)
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) ([^ ]+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Tuple = ("", 0)) -> HTTPRequest:
        """
        Parse raw HTTP request data.

        Args:
            data: One complete request (headers and body).
            client_address: The transport peer.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed or too large.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        content_length = 0
        if "Content-Length" in headers:
            try:
                content_length = int(headers["Content-Length"][0])
            except ValueError:
                raise HTTPParseError("Invalid Content-Length") from None
            if content_length < 0:
                raise HTTPParseError("Invalid Content-Length")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        split = urlsplit(target)
        return HTTPRequest(
            method=method,
            path=unquote(split.path) or "/",
            target=target,
            version=version,
            headers=headers,
            query_params=parse_qs(split.query, keep_blank_values=True),
            body=body[:content_length],
            client_address=client_address,
            raw=data[:header_end + 4 + content_length],
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """Split "METHOD SP REQUEST-URI SP HTTP-VERSION" into its parts."""
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        return method, target, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, List[str]]:
        """
        Parse header lines into canonical name → values.

        Lines starting with whitespace continue the previous header
        (obsolete line folding, still accepted). Malformed lines are
        skipped.
        """
        headers: Dict[str, List[str]] = {}
        current: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current is not None:
                    headers[current][-1] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            current = canonical_header_key(name)
            headers.setdefault(current, []).append(value.strip())

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
