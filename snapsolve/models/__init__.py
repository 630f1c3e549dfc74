"""Data models for snapsolve.

This package contains all pydantic models used throughout the system:
- Captured screenshots and their queue roles
- Extracted problem context
- Solutions and debug results
"""

from snapsolve.models.images import CapturedImage, CaptureRole, new_image_id
from snapsolve.models.results import (
    ContentKind,
    DebugResult,
    ParseDegraded,
    ProblemContext,
    Solution,
)

__all__ = [
    "CaptureRole",
    "CapturedImage",
    "ContentKind",
    "DebugResult",
    "ParseDegraded",
    "ProblemContext",
    "Solution",
    "new_image_id",
]
