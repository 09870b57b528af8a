"""
Cooperative cancellation for acquisition runs.

A run checks its token before every track and sleeps on it between
tracks, so cancelling never interrupts a fetch half-way: the current
track finishes (and is recorded in the ledger) and the loop stops.

Usage:
    token = CancellationToken()

    # In the orchestrator
    if token.is_cancelled():
        return
    token.wait(10.0)  # pacing, returns early on cancel

    # From a signal handler or another thread
    token.cancel()
"""

import threading


class CancellationToken:
    """
    Thread-safe cancellation flag backed by threading.Event.

    Example:
        >>> token = CancellationToken()
        >>> token.wait(0.01)
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """
        Sleep up to timeout seconds, waking early if cancelled.

        Returns:
            True if the token was cancelled before or during the wait.
        """
        return self._event.wait(timeout)
