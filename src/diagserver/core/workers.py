"""
=============================================================================
CONNECTION TRACKING
=============================================================================

Thread-per-connection: every accepted client gets its own daemon worker
thread. The tracker is the one place that knows which connections are
still alive, which is what graceful shutdown needs:

    ┌────────────────────┐   add()     ┌────────────────────────────────┐
    │ accept thread      │ ──────────► │ ConnectionTracker              │
    └────────────────────┘             │   {conn-1, conn-2, conn-3}     │
    ┌────────────────────┐  discard()  │                                │
    │ worker (finished)  │ ──────────► │   Condition: notify on discard │
    └────────────────────┘             └───────────────┬────────────────┘
                                                       │ wait_empty(timeout)
                                                       ▼
                                               shutdown() blocks here

=============================================================================
"""

import threading
import time
from typing import Callable, List, Optional, Set

from .connection import Connection


class ConnectionTracker:
    """Set of live connections with a wait-until-empty operation."""

    def __init__(self):
        self._connections: Set[Connection] = set()
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._connections)

    def add(self, conn: Connection):
        with self._cond:
            self._connections.add(conn)

    def discard(self, conn: Connection):
        with self._cond:
            self._connections.discard(conn)
            self._cond.notify_all()

    def snapshot(self) -> List[Connection]:
        with self._cond:
            return list(self._connections)

    def close_idle(self) -> int:
        """Abort every idle keep-alive connection. Returns how many."""
        return sum(1 for conn in self.snapshot() if conn.abort(only_if_idle=True))

    def wait_empty(
        self,
        timeout: Optional[float] = None,
        poll: Optional[Callable[[], None]] = None,
        poll_interval: float = 0.1,
    ) -> bool:
        """
        Block until no connection is left or *timeout* expires.

        *poll* runs every poll_interval while waiting (shutdown uses it to
        close connections that became idle in the meantime).

        Returns:
            True if the tracker drained, False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while self._connections:
                if deadline is None:
                    wait = poll_interval
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait = min(poll_interval, remaining)

                self._cond.wait(wait)

                if poll is not None and self._connections:
                    self._cond.release()
                    try:
                        poll()
                    finally:
                        self._cond.acquire()
            return True
