"""Helpers shared by the diagnostic handlers."""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, method_not_allowed, no_content


def valid_method(request: HTTPRequest, *allowed: str) -> Optional[HTTPResponse]:
    """
    Check the request method against *allowed*.

    Returns:
        None when the method is allowed and the handler should go on.
        Otherwise the response to send instead:

            OPTIONS → 204 with Allow
            other   → 405 "<METHOD> Method Not Allowed" with Allow

    OPTIONS is always listed in Allow.
    """
    if request.method in allowed:
        return None

    allow = ", ".join([*allowed, "OPTIONS"])

    if request.method == "OPTIONS":
        return no_content({"Allow": allow})

    return method_not_allowed(request.method, allow)


def executable_path() -> Path:
    """The file the process is running: the script, or this package."""
    argv0 = sys.argv[0] if sys.argv else ""
    if argv0 and os.path.isfile(argv0):
        return Path(argv0).resolve()
    return Path(__file__).resolve().parent.parent / "__init__.py"


def executable_mtime() -> datetime:
    """
    Modification time of the running program, in local time.

    Raises:
        OSError: If the file cannot be stat'ed.
    """
    return datetime.fromtimestamp(executable_path().stat().st_mtime)


def dump_request(request: HTTPRequest) -> str:
    """
    Render *request* roughly as it came over the wire.

        GET /request HTTP/1.1
        Host: localhost:8080
        Accept: */*
        User-Agent: curl/8.5.0

        <body>

    Host comes first, the other headers follow sorted by name, one line
    per value.
    """
    lines = [f"{request.method} {request.url} {request.version}"]

    host = request.host
    if host:
        lines.append(f"Host: {host}")

    for name in sorted(request.headers):
        if name == "Host":
            continue
        for value in request.headers[name]:
            lines.append(f"{name}: {value}")

    lines.append("")
    lines.append(request.body.decode("utf-8", errors="replace"))
    return "\r\n".join(lines)


__all__ = [
    "dump_request",
    "executable_mtime",
    "executable_path",
    "valid_method",
]
