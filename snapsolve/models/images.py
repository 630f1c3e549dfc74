"""Captured screenshot models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field


class CaptureRole(StrEnum):
    """Which queue a screenshot belongs to.

    PRIMARY screenshots feed the first solve; SUPPLEMENTARY screenshots are
    taken after a solve and feed debug runs.
    """

    PRIMARY = "primary"
    SUPPLEMENTARY = "supplementary"


def new_image_id() -> str:
    """Generate an opaque, stable screenshot id."""
    return uuid.uuid4().hex


class CapturedImage(BaseModel):
    """A screenshot owned by one ScreenshotQueue."""

    id: str = Field(default_factory=new_image_id, min_length=1)
    role: CaptureRole = Field(..., description="Queue the image belongs to")
    raw_bytes: bytes = Field(..., repr=False, description="PNG-encoded image data")
    path: Path = Field(..., description="Backing storage location")
    captured_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}

    @property
    def storage_exists(self) -> bool:
        """Check whether the backing file is still on disk."""
        return self.path.exists()

    @property
    def size_bytes(self) -> int:
        """Size of the encoded image."""
        return len(self.raw_bytes)

    def matches(self, ref: str | Path) -> bool:
        """Check whether a reference (id or storage path) names this image."""
        if isinstance(ref, Path):
            return ref == self.path
        return ref == self.id or ref == str(self.path)
