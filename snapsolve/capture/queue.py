"""Bounded screenshot queues.

Each ScreenshotQueue owns its images and their backing files. The queue never
holds more than max_size images: enqueuing into a full queue deletes the
oldest image's file before the new image becomes visible.

Two queues exist per session, one per CaptureRole, and an image belongs to
exactly one of them. ScreenshotQueues bundles both and resolves references
across roles.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from pathlib import Path

from snapsolve.interfaces.capture import QueueEmpty
from snapsolve.models.images import CapturedImage, CaptureRole, new_image_id

logger = logging.getLogger(__name__)

MAX_SCREENSHOTS = 5


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete request."""

    success: bool
    error: str | None = None


def _unlink(path: Path) -> None:
    path.unlink(missing_ok=True)


class ScreenshotQueue:
    """FIFO queue of screenshots for one role.

    Mutations are serialized with an asyncio.Lock. Readers get tuple
    snapshots, so they never observe a half-applied eviction.
    """

    def __init__(self, role: CaptureRole, directory: Path, max_size: int = MAX_SCREENSHOTS) -> None:
        """Initialize the queue.

        Args:
            role: Role of every image in this queue.
            directory: Where image files are written.
            max_size: Maximum number of images held.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.role = role
        self.directory = Path(directory)
        self.max_size = max_size
        self._items: tuple[CapturedImage, ...] = ()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, ref: object) -> bool:
        if not isinstance(ref, (str, Path)):
            return False
        return self.find(ref) is not None

    async def enqueue(self, data: bytes) -> CapturedImage:
        """Store a screenshot, evicting the oldest one if the queue is full.

        Args:
            data: PNG-encoded image.

        Returns:
            The stored image.

        Raises:
            OSError: If the image file could not be written. The queue is
                left unchanged.
        """
        image_id = new_image_id()
        path = self.directory / f"{image_id}.png"

        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)

        image = CapturedImage(id=image_id, role=self.role, raw_bytes=data, path=path)

        async with self._lock:
            items = self._items
            while len(items) >= self.max_size:
                evicted, items = items[0], items[1:]
                try:
                    await asyncio.to_thread(_unlink, evicted.path)
                except OSError as e:
                    logger.warning(f"Failed to delete evicted screenshot {evicted.path}: {e}")
                logger.debug(f"Evicted {self.role} screenshot {evicted.id}")
            self._items = (*items, image)

        logger.info(f"Queued {self.role} screenshot {image.id} ({len(self._items)}/{self.max_size})")
        return image

    def find(self, ref: str | Path) -> CapturedImage | None:
        """Look up an image by id or storage path."""
        for image in self._items:
            if image.matches(ref):
                return image
        return None

    async def delete(self, ref: str | Path) -> DeleteResult:
        """Remove one image and its backing file.

        Args:
            ref: Image id or storage path.

        Returns:
            DeleteResult. Unknown references fail without touching the queue.
        """
        async with self._lock:
            image = self.find(ref)
            if image is None:
                return DeleteResult(success=False, error=f"Screenshot not found in {self.role} queue: {ref}")

            try:
                await asyncio.to_thread(_unlink, image.path)
            except OSError as e:
                logger.error(f"Failed to delete screenshot {image.path}: {e}")
                return DeleteResult(success=False, error=str(e))

            self._items = tuple(item for item in self._items if item.id != image.id)

        logger.info(f"Deleted {self.role} screenshot {image.id}")
        return DeleteResult(success=True)

    def list(self) -> tuple[CapturedImage, ...]:
        """Snapshot of the queue, oldest first."""
        return self._items

    def existing(self) -> list[CapturedImage]:
        """Images whose backing file is still on disk."""
        return [image for image in self._items if image.storage_exists]

    def require_existing(self) -> list[CapturedImage]:
        """Images whose backing file is still on disk.

        Raises:
            QueueEmpty: If no such image is queued.
        """
        images = self.existing()
        if not images:
            raise QueueEmpty(f"No {self.role} screenshots to process")
        return images

    async def clear(self) -> None:
        """Delete every image and empty the queue.

        Storage errors are logged; the queue is emptied regardless.
        """
        async with self._lock:
            items, self._items = self._items, ()
            for image in items:
                try:
                    await asyncio.to_thread(_unlink, image.path)
                except OSError as e:
                    logger.warning(f"Failed to delete screenshot {image.path}: {e}")

        if items:
            logger.info(f"Cleared {len(items)} {self.role} screenshot(s)")


class ScreenshotQueues:
    """The primary and supplementary queues of one session."""

    def __init__(self, base_dir: Path, max_size: int = MAX_SCREENSHOTS) -> None:
        self.base_dir = Path(base_dir)
        self._queues = {
            role: ScreenshotQueue(role, self.base_dir / role.value, max_size=max_size) for role in CaptureRole
        }

    @property
    def primary(self) -> ScreenshotQueue:
        return self._queues[CaptureRole.PRIMARY]

    @property
    def supplementary(self) -> ScreenshotQueue:
        return self._queues[CaptureRole.SUPPLEMENTARY]

    def queue(self, role: CaptureRole | str) -> ScreenshotQueue:
        """Get the queue for a role.

        Raises:
            ValueError: If role is not a CaptureRole value.
        """
        return self._queues[CaptureRole(role)]

    def find(self, ref: str | Path) -> CapturedImage | None:
        """Look up an image in either queue."""
        for queue in self._queues.values():
            image = queue.find(ref)
            if image is not None:
                return image
        return None

    async def delete(self, ref: str | Path) -> DeleteResult:
        """Delete an image from whichever queue holds it."""
        image = self.find(ref)
        if image is None:
            return DeleteResult(success=False, error=f"Screenshot not found: {ref}")
        return await self._queues[image.role].delete(image.id)

    async def clear_all(self) -> None:
        """Clear both queues."""
        for queue in self._queues.values():
            await queue.clear()

    def purge_directories(self) -> int:
        """Remove leftover PNG files from previous sessions.

        Only safe before any image is enqueued.

        Returns:
            Number of files removed.
        """
        removed = 0
        for queue in self._queues.values():
            if not queue.directory.exists():
                queue.directory.mkdir(parents=True, exist_ok=True)
                continue
            for path in queue.directory.glob("*.png"):
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning(f"Failed to purge stale screenshot {path}: {e}")
        if removed:
            logger.info(f"Purged {removed} stale screenshot(s) from {self.base_dir}")
        return removed

    @staticmethod
    async def preview(image: CapturedImage) -> str:
        """Render an image as a data URL for the UI.

        Reads the backing file so that a preview is never shown for an image
        whose storage is gone.

        Raises:
            FileNotFoundError: If the backing file no longer exists.
        """
        data = await asyncio.to_thread(image.path.read_bytes)
        return f"data:image/png;base64,{base64.b64encode(data).decode('ascii')}"
