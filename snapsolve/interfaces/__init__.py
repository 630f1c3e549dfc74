"""Interface definitions for snapsolve components.

Capture strategies and provider clients implement these interfaces so the
pipeline can be tested with fakes and vendors can be swapped by configuration.
"""

from snapsolve.interfaces.capture import CaptureError, CaptureStrategy, QueueEmpty
from snapsolve.interfaces.provider import (
    ProviderClient,
    ProviderError,
    ProviderErrorKind,
    ProviderKind,
)

__all__ = [
    "CaptureError",
    "CaptureStrategy",
    "ProviderClient",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderKind",
    "QueueEmpty",
]
