"""Cooperative cancellation for pipeline runs.

A CancelToken is created per pipeline run and threaded through every
suspending provider call. Cancelling it aborts the awaited tasks at the
transport level (the HTTP request task is cancelled, not merely ignored), and
a call that completes after cancellation still raises, so a stale response
can never be committed.

Example:
    >>> token = CancelToken("solve")
    >>> text = await token.run(client.chat.completions.create(...))
    >>> # elsewhere, when a newer run supersedes this one
    >>> token.cancel()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised when work is attempted on, or completes under, a cancelled token."""

    pass


class CancelToken:
    """Cancellation token for one pipeline run.

    Supports:
    - cancel(), idempotent
    - is_cancelled polling
    - run() to await work that cancel() can abort
    - sleep() for cancellable backoff delays
    - callbacks fired once on cancellation

    All methods must be called from the event loop thread.
    """

    def __init__(self, label: str = "") -> None:
        self._label = label
        self._cancelled = False
        self._tasks: set[asyncio.Future[object]] = set()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def label(self) -> str:
        """Human-readable name used in logs."""
        return self._label

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            True if this call cancelled the token, False if it was already
            cancelled.
        """
        if self._cancelled:
            return False
        self._cancelled = True

        for task in list(self._tasks):
            task.cancel()

        callbacks = list(self._callbacks)
        self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancel callback error: {e}")

        logger.debug(f"Token cancelled: {self._label or id(self)}")
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once on cancellation.

        If the token is already cancelled, the callback runs immediately.
        """
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if cancelled."""
        if self._cancelled:
            raise OperationCancelled(f"Run '{self._label}' was cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await work that cancel() can abort.

        Args:
            awaitable: Coroutine or future to run.

        Returns:
            The awaitable's result.

        Raises:
            OperationCancelled: If the token is cancelled before, during, or
                right after the work completes.
        """
        if self._cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise OperationCancelled(f"Run '{self._label}' was cancelled") from None
            raise
        finally:
            self._tasks.discard(task)

        # A response that lands after cancel() loses the race.
        self.raise_if_cancelled()
        return result

    async def sleep(self, delay: float) -> None:
        """Sleep for delay seconds unless cancelled first."""
        await self.run(asyncio.sleep(delay))

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancelToken({self._label!r}, {state})"
