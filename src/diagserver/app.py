"""
Application factory: one HTTPServer with the middleware and routes of the
diagnostic server wired in.

    RequestIDMiddleware → LoggingMiddleware → Router → Handler pages
"""

from typing import Callable, Optional

from .config import ServerConfig
from .handlers import Handler
from .middleware import LoggingMiddleware, RequestIDMiddleware
from .request_id import RequestIDGenerator
from .server import HTTPServer
from .templates import Templates


def create_app(
    config: Optional[ServerConfig] = None,
    templates: Optional[Templates] = None,
    generator: Optional[RequestIDGenerator] = None,
    on_serve_error: Optional[Callable[[Exception], None]] = None,
) -> HTTPServer:
    """
    Create the diagnostic server (not started).

    Args:
        config: Server configuration (defaults if omitted).
        templates: Loaded templates; the packaged ones are loaded if omitted.
        generator: Request ID source; a new one is created if omitted.
        on_serve_error: Fatal accept-loop error callback (see HTTPServer).

    Raises:
        TemplateError: If the packaged templates cannot be loaded.
        RandomSourceError: If the request ID prefix cannot be generated.
    """
    config = config or ServerConfig()

    if templates is None:
        templates = Templates.load()

    if generator is None:
        generator = RequestIDGenerator(
            prefix_length=config.request_id_prefix_length,
            width=config.request_id_width,
        )

    server = HTTPServer(config, on_serve_error=on_serve_error)
    server.use(RequestIDMiddleware(generator))
    server.use(LoggingMiddleware(real_ip_header=config.real_ip_header))

    Handler(config.app_name, templates).register(server.router)
    return server
