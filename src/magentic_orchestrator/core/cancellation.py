"""
Cooperative cancellation for a run.

Each orchestrator owns one CancellationToken and threads it through every
suspending call. ``cancel()`` only sets a flag; running work observes it at
its next checkpoint (before/after a backend call, or during a backoff sleep).
"""

import asyncio

from .errors import ExecutionAborted


class CancellationToken:
    """Abort flag shared between a run and whoever may stop it."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Safe to call repeatedly."""
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    def reset(self) -> None:
        """Clear the flag before a new run starts."""
        self._event.clear()
        self.reason = None

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            ExecutionAborted: If cancellation was requested
        """
        if self._event.is_set():
            raise ExecutionAborted(self.reason or "Execution aborted by user")

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for ``seconds`` unless cancelled first.

        Raises:
            ExecutionAborted: If cancellation is requested before or during the sleep
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
