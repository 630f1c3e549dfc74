"""Capture interface: screenshot strategies and their errors."""

from __future__ import annotations

from abc import ABC, abstractmethod


class CaptureError(Exception):
    """Raised when every capture strategy has failed.

    Attributes:
        attempts: (strategy name, failure message) pairs in the order tried.
    """

    def __init__(self, message: str, attempts: list[tuple[str, str]] | None = None) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])


class QueueEmpty(Exception):
    """Raised when processing is requested but no usable screenshot is queued.

    This is a neutral signal, reported to the UI as "no screenshots" rather
    than as a failure.
    """

    pass


class CaptureStrategy(ABC):
    """One way of acquiring a full-screen image.

    Strategies are tried in order by the capture service. A strategy reports
    whether it can run on this machine before it is attempted.
    """

    name: str = "strategy"

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether this strategy can run on the current platform.

        Returns:
            True if the strategy should be attempted.
        """
        ...

    @abstractmethod
    async def capture(self) -> bytes:
        """Capture the screen.

        Returns:
            PNG-encoded image bytes.

        Raises:
            Exception: Any failure; the service records it and moves on.
        """
        ...
