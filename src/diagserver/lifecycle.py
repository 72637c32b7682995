"""
=============================================================================
SHUTDOWN COORDINATION
=============================================================================

Blocks the main thread while the server runs, then shuts it down
gracefully when asked to.

=============================================================================
TWO TRIGGERS, ONE SHUTDOWN
=============================================================================

    SIGINT / SIGTERM ──► signal handler ──┐
                                          ├──► ShutdownTrigger.fire()
    trigger.cancel() (code, tests) ───────┘          │
                                                     ▼ first one wins
                                             await_shutdown() wakes up
                                                     │
                               restore the original signal handlers
                                                     │
                                 server.shutdown(deadline) ──► "server shutdown"

Whichever trigger comes first decides the shutdown reason; the other is
ignored. Once await_shutdown() wakes up it puts the previous signal
handlers back, exactly once, so a second Ctrl+C during a slow drain
gets the default behaviour (KeyboardInterrupt / termination) instead of
being swallowed.

A shutdown that misses its deadline is logged as an error but is not
raised: the process still exits normally.

=============================================================================
SIGNALS AND THREADS
=============================================================================

Python only runs signal handlers on the main thread and only lets the
main thread install them. await_shutdown() called from another thread
(tests do this) skips signal handling and relies on the trigger alone.

=============================================================================
"""

import signal
import threading
from typing import Dict, Optional

import structlog

from .server import HTTPServer, ShutdownTimeoutError


logger = structlog.get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# Maximum time a single wait blocks, so signal handlers get to run
# promptly on platforms where Event.wait() is not interruptible.
WAIT_SLICE = 0.5


class ShutdownTrigger:
    """
    A one-shot shutdown request, fired by a signal or by cancel().

    Usage:
        trigger = ShutdownTrigger()
        threading.Timer(5.0, trigger.cancel).start()
        await_shutdown(server, trigger)    # returns "cancelled" after 5 s
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    @property
    def reason(self) -> Optional[str]:
        """What fired the trigger ("SIGTERM", "cancelled", ...), None if not fired."""
        return self._reason

    def is_set(self) -> bool:
        return self._event.is_set()

    def fire(self, reason: str) -> bool:
        """
        Fire the trigger.

        Returns:
            True if this call fired it, False if it had already fired
            (the call is then ignored).
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
        return True

    def cancel(self, reason: str = "cancelled") -> bool:
        """Fire the trigger without a signal."""
        return self.fire(reason)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class _SignalHandlers:
    """Installs SIGINT/SIGTERM handlers and restores the previous ones once."""

    def __init__(self, trigger: ShutdownTrigger):
        self._trigger = trigger
        self._previous: Dict[int, object] = {}

    def _handle(self, signum, frame):
        self._trigger.fire(signal.Signals(signum).name)

    def install(self) -> bool:
        if threading.current_thread() is not threading.main_thread():
            return False
        for sig in SHUTDOWN_SIGNALS:
            self._previous[sig] = signal.signal(sig, self._handle)
        return True

    def restore(self):
        previous, self._previous = self._previous, {}
        for sig, handler in previous.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)


def await_shutdown(
    server: HTTPServer,
    trigger: Optional[ShutdownTrigger] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Block until SIGINT, SIGTERM or *trigger* fires, then shut *server* down.

    Args:
        server: A started server.
        trigger: Cancellation source; a private one is used if omitted,
            leaving signals as the only way out.
        timeout: Shutdown deadline; defaults to config.shutdown_timeout.

    Returns:
        The reason the trigger fired ("SIGINT", "SIGTERM", "cancelled", ...).
    """
    trigger = trigger or ShutdownTrigger()
    handlers = _SignalHandlers(trigger)
    handlers.install()

    try:
        while not trigger.wait(WAIT_SLICE):
            pass
    finally:
        handlers.restore()

    reason = trigger.reason or "unknown"
    logger.info("shutting down server", reason=reason)

    try:
        server.shutdown(timeout)
    except ShutdownTimeoutError as e:
        logger.error("server shutdown error", error=str(e))

    logger.info("server shutdown")
    return reason
