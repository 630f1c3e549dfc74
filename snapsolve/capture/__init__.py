"""Screen capture and screenshot queues."""

from snapsolve.capture.queue import MAX_SCREENSHOTS, DeleteResult, ScreenshotQueue, ScreenshotQueues
from snapsolve.capture.service import CaptureService, validate_image
from snapsolve.capture.strategies import (
    MssBufferStrategy,
    MssTempFileStrategy,
    NativeScriptStrategy,
    default_strategies,
)

__all__ = [
    "MAX_SCREENSHOTS",
    "CaptureService",
    "DeleteResult",
    "MssBufferStrategy",
    "MssTempFileStrategy",
    "NativeScriptStrategy",
    "ScreenshotQueue",
    "ScreenshotQueues",
    "default_strategies",
    "validate_image",
]
