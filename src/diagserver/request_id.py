"""
=============================================================================
REQUEST ID GENERATOR
=============================================================================

Produces process-unique, monotonically increasing request identifiers.

=============================================================================
ID FORMAT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      aB3xYz0000000042                               │
    │                      ──┬─── ────┬─────                              │
    │                        │        │                                   │
    │              random prefix   sequence number                        │
    │              (6 chars,       (zero-padded to 10 digits,             │
    │               once per        +1 per request)                       │
    │               process)                                              │
    └─────────────────────────────────────────────────────────────────────┘

The prefix separates restarts of the same service (the sequence starts
again at 1), the sequence makes IDs sortable in arrival order and cheap
to produce. Compare with a UUID4 per request: unique too, but says
nothing about ordering and costs an entropy read per request.

=============================================================================
CONCURRENCY
=============================================================================

next() is called from every connection worker thread at once. The only
shared state is the counter, and it is advanced with next() on an
itertools.count, a single C-level call that the GIL makes atomic. No
lock is taken, so request threads never queue behind each other here.

Free-threaded interpreters (GIL disabled) give no such guarantee for
itertools.count, so there the increment runs under a threading.Lock.
The check is made once per generator, when it is created.

Known limitation: the sequence does not wrap. Past 10**width - 1 the
suffix simply gets longer than width digits.

=============================================================================
"""

import itertools
import secrets
import string
import sys
import threading
from typing import Optional


PREFIX_LENGTH = 6
SEQUENCE_WIDTH = 10

ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


def gil_enabled() -> bool:
    """False on a free-threaded interpreter running with the GIL disabled."""
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    return True if is_gil_enabled is None else is_gil_enabled()


class RandomSourceError(RuntimeError):
    """
    Raised when the OS cannot supply random bytes.

    Fatal at startup: without a random prefix, IDs from two runs of the
    server would collide.
    """


def random_string(length: int, alphabet: str = ALPHABET) -> str:
    """
    Return a random string of *length* characters drawn from *alphabet*.

    Uses the secrets module (the OS CSPRNG), so every character is
    uniformly distributed over the alphabet.

    Raises:
        ValueError: If length is not positive.
        RandomSourceError: If the OS random source is unavailable.
    """
    if length <= 0:
        raise ValueError("invalid length")

    try:
        return "".join(secrets.choice(alphabet) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise RandomSourceError(f"random source unavailable: {e}") from e


class RequestIDGenerator:
    """
    Generates request IDs: a fixed random prefix plus a sequence number.

    Create one per process at startup and hand it to the request ID
    middleware.

    Usage:
        generator = RequestIDGenerator()
        generator.next()   # "aB3xYz0000000001"
        generator.next()   # "aB3xYz0000000002"
    """

    def __init__(
        self,
        prefix: Optional[str] = None,
        prefix_length: int = PREFIX_LENGTH,
        width: int = SEQUENCE_WIDTH,
    ):
        """
        Args:
            prefix: Fixed prefix. Drawn at random when not given.
            prefix_length: Length of the random prefix.
            width: Zero-padded width of the sequence number.

        Raises:
            RandomSourceError: If the random prefix cannot be generated.
        """
        self.prefix = prefix if prefix is not None else random_string(prefix_length)
        self.width = width
        self._counter = itertools.count(1)
        self._lock: Optional[threading.Lock] = None if gil_enabled() else threading.Lock()

    def next(self) -> str:
        """Return the next request ID. Safe to call from any thread."""
        if self._lock is None:
            sequence = next(self._counter)
        else:
            with self._lock:
                sequence = next(self._counter)
        return f"{self.prefix}{sequence:0{self.width}d}"

    def __repr__(self) -> str:
        return f"RequestIDGenerator(prefix={self.prefix!r}, width={self.width})"
