"""Full-screen capture with ordered fallbacks.

The CaptureService walks a list of strategies until one produces a valid
image. It never hands back a placeholder: if every strategy fails, the
caller gets a CaptureError describing each attempt.

Callers that show their own window must hide it while the screen is
captured. capture_around() does this with the platform's settle delays:

Example:
    >>> service = CaptureService.from_config(config.capture)
    >>> png = await service.capture_around(window.hide, window.show)
"""

from __future__ import annotations

import asyncio
import io
import logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from PIL import Image, UnidentifiedImageError

from snapsolve.capture.strategies import default_strategies
from snapsolve.interfaces.capture import CaptureError, CaptureStrategy

if TYPE_CHECKING:
    from snapsolve.config.loader import CaptureConfig

logger = logging.getLogger(__name__)

# Images smaller than this are placeholders, not screenshots.
MIN_DIMENSION = 2


def validate_image(data: bytes) -> tuple[int, int]:
    """Check that data decodes to a real screenshot.

    Args:
        data: Encoded image bytes.

    Returns:
        (width, height) of the image.

    Raises:
        ValueError: If data is empty, undecodable, or degenerate.
    """
    if not data:
        raise ValueError("Screenshot capture returned empty buffer")
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Screenshot data is not a valid image: {e}") from e
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        raise ValueError(f"Screenshot is degenerate ({width}x{height})")
    return width, height


class CaptureService:
    """Acquire full-screen PNGs using the best available mechanism.

    Attributes:
        hide_delay: Seconds to wait after hiding the caller's window.
        show_delay: Seconds to wait before showing it again.
    """

    def __init__(
        self,
        strategies: Sequence[CaptureStrategy] | None = None,
        hide_delay: float | None = None,
        show_delay: float = 0.2,
        platform: str | None = None,
    ) -> None:
        """Initialize the capture service.

        Args:
            strategies: Ordered strategies. Defaults to the standard chain.
            hide_delay: Window-hide settle time. Defaults to 0.5s on Windows
                and 0.3s elsewhere.
            show_delay: Delay before restoring the window.
            platform: Platform override, mainly for tests.
        """
        self._platform = platform or sys.platform
        self._strategies = list(strategies) if strategies is not None else default_strategies(
            platform=self._platform
        )
        if hide_delay is None:
            hide_delay = 0.5 if self._platform == "win32" else 0.3
        self.hide_delay = hide_delay
        self.show_delay = show_delay

    @classmethod
    def from_config(cls, config: CaptureConfig, platform: str | None = None) -> CaptureService:
        """Create a service from the capture config section."""
        platform = platform or sys.platform
        temp_dir = Path(config.temp_dir) if config.temp_dir else None
        hide_delay = config.hide_delay_windows if platform == "win32" else config.hide_delay_default
        return cls(
            strategies=default_strategies(
                temp_dir=temp_dir,
                script_timeout=config.script_timeout,
                platform=platform,
            ),
            hide_delay=hide_delay,
            show_delay=config.show_delay,
            platform=platform,
        )

    @property
    def strategies(self) -> list[CaptureStrategy]:
        """Strategies in the order they are tried."""
        return list(self._strategies)

    async def capture(self) -> bytes:
        """Capture the full screen.

        Returns:
            PNG-encoded screenshot.

        Raises:
            CaptureError: If every strategy failed or none is available.
        """
        attempts: list[tuple[str, str]] = []

        for strategy in self._strategies:
            if not strategy.is_available():
                logger.debug(f"Capture strategy {strategy.name} not available, skipping")
                attempts.append((strategy.name, "not available"))
                continue

            try:
                data = await strategy.capture()
                width, height = validate_image(data)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Capture strategy {strategy.name} failed: {e}")
                attempts.append((strategy.name, str(e) or type(e).__name__))
                continue

            logger.debug(f"Captured {width}x{height} screenshot via {strategy.name} ({len(data)} bytes)")
            return data

        summary = "; ".join(f"{name}: {reason}" for name, reason in attempts)
        raise CaptureError(
            f"Could not capture screenshot with any method ({summary}). "
            "Check screen recording permissions and try again.",
            attempts=attempts,
        )

    async def capture_around(
        self,
        hide: Callable[[], None] | None = None,
        show: Callable[[], None] | None = None,
    ) -> bytes:
        """Capture with the caller's window hidden.

        The window is restored even if the capture fails.

        Args:
            hide: Hides the caller's window.
            show: Shows it again.

        Returns:
            PNG-encoded screenshot.

        Raises:
            CaptureError: If every strategy failed.
        """
        if hide is not None:
            hide()
        try:
            await asyncio.sleep(self.hide_delay)
            return await self.capture()
        finally:
            await asyncio.sleep(self.show_delay)
            if show is not None:
                show()
