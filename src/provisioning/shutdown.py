"""Signal-driven cancellation for a provisioning run.

Signal handlers never touch pipeline state directly. Their only job is to
cancel a :class:`CancellationToken`, which the step loop polls between
steps and the command runner polls while a child process is running.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Any

from src.provisioning.exceptions import ProvisionAbortedError

logger = logging.getLogger(__name__)

SIGNAL_REASONS: dict[int, str] = {
    signal.SIGINT: "Process interrupted",
    signal.SIGTERM: "Process terminated",
}


class CancellationToken:
    """One-shot, thread-safe cancellation flag with a reason string."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason or "Provisioning aborted"

    def cancel(self, reason: str = "Provisioning aborted") -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ProvisionAbortedError(self.reason)


class GracefulShutdown:
    """Routes SIGINT / SIGTERM to a cancellation token.

    Usage::

        token = CancellationToken()
        shutdown = GracefulShutdown(token)
        shutdown.install()
        try:
            ...
        finally:
            shutdown.restore()
    """

    def __init__(self, token: CancellationToken) -> None:
        self._token = token
        self._previous: dict[int, Any] = {}
        self._handling = False  # reentrancy guard

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def should_stop(self) -> bool:
        """Whether a shutdown signal has been received."""
        return self._token.cancelled

    def install(self) -> None:
        """Register handlers for SIGINT and SIGTERM.

        Must be called from the main thread; ``signal.signal`` raises
        ``ValueError`` elsewhere.
        """
        for signum in SIGNAL_REASONS:
            self._previous[signum] = signal.signal(signum, self._signal_handler)

    def restore(self) -> None:
        """Put back the handlers that were active before :meth:`install`."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous.clear()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        if self._handling:
            return  # reentrancy guard
        self._handling = True
        try:
            reason = SIGNAL_REASONS.get(signum, f"Received signal {signum}")
            if self._token.cancel(reason):
                logger.warning("Received signal %s -- cancelling provisioning", signum)
        finally:
            self._handling = False
