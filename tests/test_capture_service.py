"""Tests for screenshot capture with ordered fallbacks.

These tests verify:
- Strategies are tried in order until one yields a valid image
- Unavailable strategies are skipped
- Degenerate or undecodable images are rejected, never returned
- Total failure raises CaptureError with every attempt recorded
- The caller's window is restored even when capture fails
"""

from __future__ import annotations

from io import BytesIO
from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image

from snapsolve.capture.service import CaptureService, validate_image
from snapsolve.config.loader import CaptureConfig
from snapsolve.interfaces.capture import CaptureError, CaptureStrategy


def create_test_image_bytes(width: int = 64, height: int = 48, color: tuple = (255, 0, 0)) -> bytes:
    """Create PNG bytes for a test image."""
    img = Image.new("RGB", (width, height), color)
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeStrategy(CaptureStrategy):
    """Strategy returning canned data or raising a canned error."""

    def __init__(
        self,
        name: str,
        data: bytes | None = None,
        error: Exception | None = None,
        available: bool = True,
    ) -> None:
        self.name = name
        self._data = data
        self._error = error
        self._available = available
        self.calls = 0

    def is_available(self) -> bool:
        return self._available

    async def capture(self) -> bytes:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._data or b""


@pytest.fixture
def no_sleep():
    """Skip the hide/show settle delays."""
    with patch("snapsolve.capture.service.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestValidateImage:
    """Tests for validate_image()."""

    def test_returns_dimensions(self):
        """A real PNG should report its size."""
        assert validate_image(create_test_image_bytes(64, 48)) == (64, 48)

    def test_rejects_empty_buffer(self):
        """Empty data is not a screenshot."""
        with pytest.raises(ValueError, match="empty"):
            validate_image(b"")

    def test_rejects_garbage(self):
        """Undecodable bytes should be rejected."""
        with pytest.raises(ValueError, match="not a valid image"):
            validate_image(b"definitely not a png")

    def test_rejects_one_pixel_placeholder(self):
        """A 1x1 image is a placeholder, not a capture."""
        with pytest.raises(ValueError, match="degenerate"):
            validate_image(create_test_image_bytes(1, 1))

    def test_accepts_minimum_size(self):
        """2x2 is the smallest accepted image."""
        assert validate_image(create_test_image_bytes(2, 2)) == (2, 2)


class TestCaptureServiceInitialization:
    """Tests for CaptureService construction."""

    def test_default_hide_delay_windows(self):
        """Windows waits longer for the window to disappear."""
        service = CaptureService(strategies=[], platform="win32")

        assert service.hide_delay == 0.5

    def test_default_hide_delay_other_platforms(self):
        """Other platforms use the shorter settle delay."""
        service = CaptureService(strategies=[], platform="darwin")

        assert service.hide_delay == 0.3
        assert service.show_delay == 0.2

    def test_default_strategy_chain(self):
        """The default chain is buffer, temp file, then native script."""
        service = CaptureService(platform="linux")

        assert [s.name for s in service.strategies] == [
            "mss-buffer",
            "mss-tempfile",
            "native-script",
        ]

    def test_from_config(self):
        """from_config should pick the platform delay from the config."""
        config = CaptureConfig(hide_delay_windows=0.9, hide_delay_default=0.1, show_delay=0.4)

        windows = CaptureService.from_config(config, platform="win32")
        linux = CaptureService.from_config(config, platform="linux")

        assert windows.hide_delay == 0.9
        assert linux.hide_delay == 0.1
        assert linux.show_delay == 0.4
        assert len(linux.strategies) == 3


class TestCaptureFallbacks:
    """Tests for capture() fallback ordering."""

    @pytest.mark.asyncio
    async def test_first_strategy_wins(self):
        """A successful first strategy should short-circuit the chain."""
        png = create_test_image_bytes()
        first = FakeStrategy("first", data=png)
        second = FakeStrategy("second", data=create_test_image_bytes(color=(0, 0, 255)))
        service = CaptureService(strategies=[first, second])

        result = await service.capture()

        assert result == png
        assert first.calls == 1
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_after_error(self):
        """A raising strategy should hand over to the next one."""
        png = create_test_image_bytes()
        first = FakeStrategy("first", error=RuntimeError("grab failed"))
        second = FakeStrategy("second", data=png)
        service = CaptureService(strategies=[first, second])

        result = await service.capture()

        assert result == png
        assert first.calls == 1
        assert second.calls == 1

    @pytest.mark.asyncio
    async def test_degenerate_image_triggers_fallback(self):
        """A 1x1 result counts as a failure, not a screenshot."""
        png = create_test_image_bytes()
        first = FakeStrategy("first", data=create_test_image_bytes(1, 1))
        second = FakeStrategy("second", data=png)
        service = CaptureService(strategies=[first, second])

        result = await service.capture()

        assert result == png

    @pytest.mark.asyncio
    async def test_unavailable_strategy_skipped(self):
        """Unavailable strategies should never be invoked."""
        png = create_test_image_bytes()
        missing = FakeStrategy("missing", data=png, available=False)
        present = FakeStrategy("present", data=png)
        service = CaptureService(strategies=[missing, present])

        await service.capture()

        assert missing.calls == 0
        assert present.calls == 1

    @pytest.mark.asyncio
    async def test_all_fail_raises_capture_error(self):
        """Total failure should raise with every attempt recorded."""
        service = CaptureService(
            strategies=[
                FakeStrategy("first", error=RuntimeError("no display")),
                FakeStrategy("second", data=b""),
                FakeStrategy("third", available=False),
            ]
        )

        with pytest.raises(CaptureError) as exc_info:
            await service.capture()

        error = exc_info.value
        assert [name for name, _ in error.attempts] == ["first", "second", "third"]
        assert error.attempts[0][1] == "no display"
        assert "empty" in error.attempts[1][1]
        assert error.attempts[2][1] == "not available"
        assert "permissions" in str(error)

    @pytest.mark.asyncio
    async def test_no_strategies_raises(self):
        """An empty chain cannot produce a screenshot."""
        service = CaptureService(strategies=[])

        with pytest.raises(CaptureError):
            await service.capture()


class TestCaptureAround:
    """Tests for hiding and restoring the caller's window."""

    @pytest.mark.asyncio
    async def test_hides_then_shows(self, no_sleep):
        """hide() runs before capture and show() after."""
        calls: list[str] = []
        png = create_test_image_bytes()

        class RecordingStrategy(FakeStrategy):
            async def capture(self) -> bytes:
                calls.append("capture")
                return png

        service = CaptureService(strategies=[RecordingStrategy("rec")], hide_delay=0.3, show_delay=0.2)

        result = await service.capture_around(
            hide=lambda: calls.append("hide"),
            show=lambda: calls.append("show"),
        )

        assert result == png
        assert calls == ["hide", "capture", "show"]
        delays = [call.args[0] for call in no_sleep.await_args_list]
        assert delays == [0.3, 0.2]

    @pytest.mark.asyncio
    async def test_shows_window_after_failure(self, no_sleep):
        """The window must come back even when every strategy fails."""
        shown = []
        service = CaptureService(strategies=[FakeStrategy("bad", error=RuntimeError("boom"))])

        with pytest.raises(CaptureError):
            await service.capture_around(hide=lambda: None, show=lambda: shown.append(True))

        assert shown == [True]

    @pytest.mark.asyncio
    async def test_callbacks_optional(self, no_sleep):
        """capture_around works without window callbacks."""
        png = create_test_image_bytes()
        service = CaptureService(strategies=[FakeStrategy("ok", data=png)])

        assert await service.capture_around() == png
