"""Boundary operations for the UI collaborator.

SessionController is the request/response surface a UI (or the HTTP bridge)
talks to. Every operation reports failure through its result instead of
raising, so a caller can show the error and carry on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from snapsolve.bridge.events import EventStream
from snapsolve.capture.queue import ScreenshotQueues
from snapsolve.capture.service import CaptureService
from snapsolve.config.loader import ConfigManager
from snapsolve.core.orchestrator import PipelineOrchestrator
from snapsolve.interfaces.capture import CaptureError
from snapsolve.models.images import CaptureRole

logger = logging.getLogger(__name__)

WindowCallback = Callable[[], None]


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a boundary operation."""

    success: bool
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        payload.update(self.data)
        return payload


@dataclass(frozen=True)
class QueueEntry:
    """A queued screenshot as shown to the UI."""

    id: str
    path: str
    preview: str


class SessionController:
    """Capture, queue and processing operations for one UI session.

    Example:
        >>> session = SessionController.from_config(ConfigManager(load_config()))
        >>> await session.trigger_capture()
        >>> await session.trigger_process()
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        capture_service: CaptureService,
        queues: ScreenshotQueues,
        events: EventStream,
        hide_window: WindowCallback | None = None,
        show_window: WindowCallback | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            orchestrator: Pipeline that owns results and run state.
            capture_service: Screen capture service.
            queues: Screenshot queues shared with the orchestrator.
            events: Event stream shared with the orchestrator.
            hide_window: Default callback hiding the UI before capture.
            show_window: Default callback restoring the UI after capture.
        """
        self.orchestrator = orchestrator
        self.capture_service = capture_service
        self.queues = queues
        self.events = events
        self._hide_window = hide_window
        self._show_window = show_window

    @classmethod
    def from_config(
        cls,
        config_manager: ConfigManager,
        events: EventStream | None = None,
        capture_service: CaptureService | None = None,
    ) -> SessionController:
        """Build a session and its collaborators from configuration.

        Stale screenshots from previous sessions are purged when
        queue.purge_on_start is set.
        """
        config = config_manager.get()
        events = events or EventStream(max_events=config.bridge.max_events)
        queues = ScreenshotQueues(Path(config.queue.data_dir), max_size=config.queue.max_size)
        if config.queue.purge_on_start:
            queues.purge_directories()

        orchestrator = PipelineOrchestrator(config_manager, queues, events)
        return cls(
            orchestrator=orchestrator,
            capture_service=capture_service or CaptureService.from_config(config.capture),
            queues=queues,
            events=events,
        )

    async def trigger_capture(
        self,
        hide: WindowCallback | None = None,
        show: WindowCallback | None = None,
    ) -> OperationResult:
        """Capture the screen into the queue for the current view.

        Args:
            hide: Hides the UI window; defaults to the session's callback.
            show: Restores the UI window; defaults to the session's callback.
        """
        role = self.orchestrator.capture_role
        try:
            data = await self.capture_service.capture_around(
                hide or self._hide_window,
                show or self._show_window,
            )
        except CaptureError as e:
            logger.error(f"Screenshot capture failed: {e}")
            return OperationResult(success=False, error=str(e))

        try:
            image = await self.queues.queue(role).enqueue(data)
        except OSError as e:
            logger.error(f"Failed to store screenshot: {e}")
            return OperationResult(success=False, error=f"Failed to store screenshot: {e}")

        return OperationResult(
            success=True,
            data={"id": image.id, "path": str(image.path), "role": role.value},
        )

    async def list_queue(self, role: CaptureRole | str | None = None) -> list[QueueEntry]:
        """List a queue as id/path/preview entries.

        Images whose file has disappeared are left out.

        Args:
            role: Queue to list; defaults to the one new captures join.

        Raises:
            ValueError: If role is not a valid capture role.
        """
        queue = self.queues.queue(role or self.orchestrator.capture_role)
        entries: list[QueueEntry] = []
        for image in queue.list():
            try:
                preview = await self.queues.preview(image)
            except FileNotFoundError:
                logger.debug(f"Skipping screenshot {image.id}: file is gone")
                continue
            entries.append(QueueEntry(id=image.id, path=str(image.path), preview=preview))
        return entries

    async def delete_image(self, ref: str) -> OperationResult:
        """Delete a screenshot by id or path from whichever queue holds it."""
        result = await self.queues.delete(ref)
        return OperationResult(success=result.success, error=result.error)

    async def trigger_process(self) -> OperationResult:
        """Solve or debug, depending on the current view.

        Details arrive on the event stream; the result only says whether a
        new solution or debug result was produced.
        """
        try:
            outcome = await self.orchestrator.process()
        except Exception as e:
            logger.exception(f"Processing failed: {e}")
            return OperationResult(success=False, error=str(e))

        data: dict[str, Any] = {"status": outcome.status.value}
        if outcome.error is not None:
            data["kind"] = outcome.error.kind.value
        return OperationResult(success=outcome.success, error=outcome.message, data=data)

    async def trigger_reset(self) -> OperationResult:
        """Cancel in-flight runs and clear queues and results."""
        await self.orchestrator.reset()
        return OperationResult(success=True)

    def state(self) -> dict[str, Any]:
        """Pipeline state plus queue sizes."""
        snapshot = self.orchestrator.snapshot()
        snapshot["queues"] = {role.value: len(self.queues.queue(role)) for role in CaptureRole}
        return snapshot

    async def aclose(self) -> None:
        """Cancel runs and release provider resources."""
        await self.orchestrator.aclose()
