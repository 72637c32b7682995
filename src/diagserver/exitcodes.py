"""
Process exit codes.

Each startup failure gets its own code so scripts and supervisors can tell
a bad command line apart from a server that could not bind its port.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Non-zero exit codes used by the CLI and the accept loop."""

    SERVER = 1      # listen or serve failure
    USAGE = 2       # invalid command-line usage (argparse also exits with 2)
    LOG = 3         # logging could not be initialized
    TEMPLATE = 4    # HTML templates could not be loaded
