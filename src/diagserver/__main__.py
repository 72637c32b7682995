"""
=============================================================================
DIAGNOSTIC SERVER CLI ENTRY POINT
=============================================================================

    # Run with defaults (localhost:8080, JSON logs on stderr)
    python -m diagserver

    # All interfaces, port 3000, human-readable logs
    diagserver --addr :3000 --logtype text

    # Debug logs with source locations, appended to a file
    diagserver --loglevel debug --logsource --logfile /var/log/diagserver.log

Stop it with Ctrl+C or SIGTERM: in-flight requests get --shutdown-timeout
seconds to finish.

=============================================================================
EXIT CODES
=============================================================================

    0   Clean shutdown (also after a shutdown timeout, which is logged)
    1   Could not listen, serve, or generate request IDs
    2   Invalid command line
    3   Logging could not be initialized
    4   Templates could not be loaded

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

import structlog

from . import __version__
from .app import create_app
from .config import ServerConfig
from .core import ListenError
from .exitcodes import ExitCode
from .lifecycle import await_shutdown
from .log import LOG_LEVELS, LOG_TYPES, LoggingInitError, configure_logging, log_level, log_levels
from .request_id import RandomSourceError, RequestIDGenerator
from .templates import TemplateError, Templates


logger = structlog.get_logger(__name__)

PROG = "diagserver"


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    """Command-line options, with defaults taken from the environment."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Diagnostic web server: echoes request details back to the client",
    )
    parser.add_argument(
        "--addr",
        default=defaults.addr,
        help=f"address to listen on, [host]:port (default: {defaults.addr})",
    )
    parser.add_argument(
        "--logfile",
        default=defaults.log_file,
        help="append logs to this file (default: stderr)",
    )
    parser.add_argument(
        "--loglevel",
        type=str.lower,
        choices=list(LOG_LEVELS),
        default=defaults.log_level.lower(),
        metavar="LEVEL",
        help=f"minimum level to log: {log_levels()} (default: {defaults.log_level})",
    )
    parser.add_argument(
        "--logtype",
        choices=LOG_TYPES,
        default=defaults.log_type,
        help=f"log format (default: {defaults.log_type})",
    )
    parser.add_argument(
        "--logsource",
        action="store_true",
        default=defaults.log_source,
        help="add source file, function and line to log entries",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=defaults.shutdown_timeout,
        metavar="SECONDS",
        help=f"graceful shutdown deadline (default: {defaults.shutdown_timeout:g})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{PROG} {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the server until SIGINT/SIGTERM. Returns the process exit code.

    argparse itself exits with 2 on unknown options or bad choices.
    """
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        print(f"{PROG}: invalid environment: {e}", file=sys.stderr)
        return ExitCode.USAGE

    parser = build_parser(defaults)
    args = parser.parse_args(argv)

    try:
        config = ServerConfig.from_addr(
            args.addr,
            log_file=args.logfile,
            log_level=args.loglevel,
            log_type=args.logtype,
            log_source=args.logsource,
            shutdown_timeout=args.shutdown_timeout,
        )
        config.validate()
    except ValueError as e:
        parser.print_usage(sys.stderr)
        print(f"{PROG}: {e}", file=sys.stderr)
        return ExitCode.USAGE

    try:
        configure_logging(
            filename=config.log_file,
            log_type=config.log_type,
            level=log_level(config.log_level),
            add_source=config.log_source,
        )
    except LoggingInitError as e:
        print(f"{PROG}: {e}", file=sys.stderr)
        return ExitCode.LOG

    try:
        templates = Templates.load()
    except TemplateError as e:
        logger.error("failed to load templates", error=str(e))
        return ExitCode.TEMPLATE
    logger.debug("loaded templates", names=templates.names())

    try:
        generator = RequestIDGenerator(
            prefix_length=config.request_id_prefix_length,
            width=config.request_id_width,
        )
    except RandomSourceError as e:
        logger.error("failed to initialize request IDs", error=str(e))
        return ExitCode.SERVER

    server = create_app(config, templates=templates, generator=generator)

    try:
        server.start()
    except ListenError as e:
        logger.error("failed to listen", error=str(e))
        return ExitCode.SERVER

    await_shutdown(server)
    return 0


if __name__ == "__main__":
    sys.exit(main())
