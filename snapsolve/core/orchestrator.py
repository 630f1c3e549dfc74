"""Pipeline orchestration: extract, analyze and debug runs.

The PipelineOrchestrator drives one run at a time per capture role:

- A solve run (primary role) extracts the content of the primary screenshots
  and then analyzes it into a Solution.
- A debug run (supplementary role) sends primary and supplementary
  screenshots together with the last extracted content and produces a
  DebugResult.

Every run holds a CancelToken. Starting a run cancels the previous token of
the same role, and a run only commits results while its token is still the
active one, so a late response from a superseded run never overwrites newer
state.

Progress and results are reported through the EventStream.

Example:
    >>> orchestrator = PipelineOrchestrator(config_manager, queues, events)
    >>> outcome = await orchestrator.process()
    >>> if outcome.status is RunStatus.SOLVED:
    ...     print(outcome.solution.code)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from snapsolve.bridge.events import EventStream, EventType
from snapsolve.config.secrets import resolve_api_key
from snapsolve.core.cancellation import CancelToken
from snapsolve.interfaces.capture import QueueEmpty
from snapsolve.interfaces.provider import ProviderClient, ProviderError, ProviderErrorKind
from snapsolve.models.images import CaptureRole
from snapsolve.models.results import DebugResult, ProblemContext, Solution
from snapsolve.parsing.response_parser import infer_content_kind, parse, parse_debug
from snapsolve.providers.factory import create_provider_client

if TYPE_CHECKING:
    from snapsolve.capture.queue import ScreenshotQueues
    from snapsolve.config.loader import Config, ConfigManager, LLMConfig

    ProviderFactory = Callable[[LLMConfig, str], ProviderClient]
    KeyResolver = Callable[[str, str | None], str | None]

logger = logging.getLogger(__name__)


class PipelineState(StrEnum):
    """Possible states of the pipeline."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    DONE = "done"
    FAILED = "failed"
    DEBUGGING = "debugging"
    DEBUG_DONE = "debug_done"
    DEBUG_FAILED = "debug_failed"


class View(StrEnum):
    """Which view the UI shows.

    QUEUE is shown before the first solve; new captures join the primary
    queue and processing solves. SOLUTIONS is shown after a solve; new
    captures join the supplementary queue and processing debugs.
    """

    QUEUE = "queue"
    SOLUTIONS = "solutions"


class RunStatus(StrEnum):
    """Terminal outcome of one process() call."""

    SOLVED = "solved"
    DEBUGGED = "debugged"
    FAILED = "failed"
    NO_SCREENSHOTS = "no_screenshots"
    CANCELLED = "cancelled"


@dataclass
class RunOutcome:
    """Result of a pipeline run.

    Attributes:
        status: Terminal status.
        error: Provider error for FAILED runs that reached a provider.
        message: Human-readable failure reason.
        solution: New solution for SOLVED runs.
        debug_result: New debug result for DEBUGGED runs.
    """

    status: RunStatus
    error: ProviderError | None = None
    message: str | None = None
    solution: Solution | None = None
    debug_result: DebugResult | None = None

    @property
    def success(self) -> bool:
        """Whether the run produced a result."""
        return self.status in (RunStatus.SOLVED, RunStatus.DEBUGGED)


class PipelineOrchestrator:
    """Runs the solve and debug pipelines against the active provider.

    The orchestrator is the only writer of the queues and of the current
    context, solution and debug slots. All methods must be called from the
    event loop thread.

    Attributes:
        state: Current pipeline state.
        view: Current UI view.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        queues: ScreenshotQueues,
        events: EventStream,
        provider_factory: ProviderFactory = create_provider_client,
        key_resolver: KeyResolver = resolve_api_key,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config_manager: Source of config snapshots and change notices.
            queues: Primary and supplementary screenshot queues.
            events: Stream that receives progress and result events.
            provider_factory: Builds a ProviderClient from (LLMConfig, key).
            key_resolver: Resolves (provider, configured key) to an API key.
        """
        self._config_manager = config_manager
        self._queues = queues
        self._events = events
        self._provider_factory = provider_factory
        self._key_resolver = key_resolver

        self.state = PipelineState.IDLE
        self.view = View.QUEUE

        self._problem: ProblemContext | None = None
        self._solution: Solution | None = None
        self._debug_result: DebugResult | None = None
        self._has_debugged = False

        self._tokens: dict[CaptureRole, CancelToken] = {}
        self._client: ProviderClient | None = None
        self._client_stale = False
        self._client_lock = asyncio.Lock()

        config_manager.subscribe(self._on_config_change)

    @property
    def problem_context(self) -> ProblemContext | None:
        """Content extracted by the last successful extract stage."""
        return self._problem

    @property
    def solution(self) -> Solution | None:
        """Result of the last successful solve."""
        return self._solution

    @property
    def debug_result(self) -> DebugResult | None:
        """Result of the last successful debug run."""
        return self._debug_result

    @property
    def has_debugged(self) -> bool:
        """Whether a debug run has succeeded since the last solve."""
        return self._has_debugged

    @property
    def capture_role(self) -> CaptureRole:
        """Queue that new captures should join."""
        return CaptureRole.PRIMARY if self.view is View.QUEUE else CaptureRole.SUPPLEMENTARY

    @property
    def is_processing(self) -> bool:
        """Whether any run is in flight."""
        return any(not token.is_cancelled for token in self._tokens.values())

    def snapshot(self) -> dict[str, Any]:
        """Serialize the current state for UI consumers."""
        return {
            "state": self.state.value,
            "view": self.view.value,
            "processing": self.is_processing,
            "has_debugged": self._has_debugged,
            "provider": self._config_manager.get().llm.provider,
            "problem": self._problem.raw_text if self._problem else None,
            "solution": self._solution.to_payload() if self._solution else None,
            "debug_result": self._debug_result.to_payload() if self._debug_result else None,
        }

    # ------------------------------------------------------------------
    # Provider client lifecycle
    # ------------------------------------------------------------------

    def _on_config_change(self, config: Config) -> None:
        self._client_stale = True
        logger.debug(f"Config changed (provider={config.llm.provider}), client will be rebuilt")

    async def _close_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error closing {client.kind} client: {e}")

    async def _get_client(self, config: Config) -> ProviderClient | None:
        """Return the client for the configured provider, rebuilding if stale.

        Concurrent runs share one rebuild; the lock keeps a second run from
        building a client that would replace, and leak, the first one.

        Returns:
            The client, or None if no API key is available.

        Raises:
            Exception: Whatever the key resolver or provider factory raises.
        """
        async with self._client_lock:
            if self._client is not None and not self._client_stale:
                return self._client

            await self._close_client()
            self._client_stale = False

            api_key = self._key_resolver(config.llm.provider, config.llm.api_key)
            if not api_key:
                return None
            self._client = self._provider_factory(config.llm, api_key)
            return self._client

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _begin_run(self, role: CaptureRole) -> CancelToken:
        previous = self._tokens.get(role)
        if previous is not None and previous.cancel():
            logger.info(f"Superseding in-flight {role} run")
        token = CancelToken(f"{role}-run")
        self._tokens[role] = token
        return token

    def _finish_run(self, role: CaptureRole, token: CancelToken) -> None:
        if self._tokens.get(role) is token:
            del self._tokens[role]

    def _is_current(self, role: CaptureRole, token: CancelToken) -> bool:
        return not token.is_cancelled and self._tokens.get(role) is token

    def _missing_key(self, role: CaptureRole, token: CancelToken, provider: str) -> RunOutcome:
        self._finish_run(role, token)
        if role is CaptureRole.PRIMARY:
            self.state = PipelineState.FAILED
            self.view = View.QUEUE
        else:
            self.state = PipelineState.DEBUG_FAILED

        error = ProviderError(
            ProviderErrorKind.UNAUTHENTICATED,
            f"No API key configured for {provider}",
            provider=provider,
        )
        logger.warning(error.message)
        self._events.publish(EventType.API_KEY_INVALID, error.to_payload())
        return RunOutcome(RunStatus.FAILED, error=error, message=error.message)

    def _no_screenshots(self, reason: str) -> RunOutcome:
        logger.info(reason)
        self._events.publish(EventType.NO_SCREENSHOTS, {"message": reason})
        return RunOutcome(RunStatus.NO_SCREENSHOTS, message=reason)

    @staticmethod
    def _as_provider_error(exc: Exception, config: Config) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        logger.exception(f"Unexpected provider failure: {exc}")
        return ProviderError(ProviderErrorKind.UNKNOWN, str(exc) or type(exc).__name__, provider=config.llm.provider)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def process(self) -> RunOutcome:
        """Solve from the primary queue, or debug once a solution is shown."""
        if self.view is View.QUEUE:
            return await self.solve()
        return await self.debug()

    async def solve(self) -> RunOutcome:
        """Run extract then analyze over the primary queue.

        Returns:
            RunOutcome. SOLVED on success, NO_SCREENSHOTS when no primary
            image is available, CANCELLED when superseded or cancelled, and
            FAILED with the provider error otherwise.
        """
        role = CaptureRole.PRIMARY
        config = self._config_manager.get()

        try:
            images = self._queues.primary.require_existing()
        except QueueEmpty:
            return self._no_screenshots("No screenshots to process")

        token = self._begin_run(role)
        try:
            client = await self._get_client(config)
        except Exception as e:
            return self._solve_failed(role, token, self._as_provider_error(e, config))
        if client is None:
            return self._missing_key(role, token, config.llm.provider)
        if not self._is_current(role, token):
            return RunOutcome(RunStatus.CANCELLED)

        logger.info(f"Starting solve run with {len(images)} screenshot(s) via {client.kind}")
        self._events.publish(EventType.INITIAL_START)
        self.state = PipelineState.EXTRACTING
        self._events.progress("Analyzing screenshots...", 20)

        try:
            raw_problem = await client.extract(images, config.llm.language, token)
            if not self._is_current(role, token):
                return RunOutcome(RunStatus.CANCELLED)

            context = ProblemContext(
                raw_text=raw_problem,
                content_kind=infer_content_kind(raw_problem),
                language=config.llm.language,
            )
            self._problem = context
            self._events.publish(
                EventType.PROBLEM_EXTRACTED,
                {"content": context.raw_text, "content_kind": context.content_kind.value, "language": context.language},
            )
            self._events.progress("Content extracted. Preparing analysis...", 40)

            self.state = PipelineState.ANALYZING
            self._events.progress("Creating analysis...", 60)
            raw_solution = await client.analyze(context, token)
            if not self._is_current(role, token):
                return RunOutcome(RunStatus.CANCELLED)
        except Exception as e:
            return self._solve_failed(role, token, self._as_provider_error(e, config))

        parsed = parse(raw_solution)
        solution = Solution(
            code=parsed.code,
            content=raw_solution,
            thoughts=parsed.thoughts,
            time_complexity=parsed.time_complexity,
            space_complexity=parsed.space_complexity,
            degraded=parsed.degraded,
        )
        if parsed.degraded:
            logger.debug(f"Solution parsed with defaults for: {sorted(parsed.degraded)}")

        self._solution = solution
        self._debug_result = None
        self._has_debugged = False
        self.state = PipelineState.DONE
        self.view = View.SOLUTIONS
        self._finish_run(role, token)

        self._events.progress("Analysis complete", 100)
        self._events.publish(EventType.SOLUTION_SUCCESS, solution.to_payload())
        logger.info("Solve run complete")

        # Each solve starts a fresh debug context.
        await self._queues.supplementary.clear()
        return RunOutcome(RunStatus.SOLVED, solution=solution)

    def _solve_failed(self, role: CaptureRole, token: CancelToken, error: ProviderError) -> RunOutcome:
        if error.kind is ProviderErrorKind.CANCELLED or not self._is_current(role, token):
            logger.info("Solve run cancelled")
            return RunOutcome(RunStatus.CANCELLED)

        self._finish_run(role, token)
        self.state = PipelineState.FAILED
        self.view = View.QUEUE
        logger.error(f"Solve run failed ({error.kind}): {error.message}")

        if error.kind is ProviderErrorKind.UNAUTHENTICATED:
            self._events.publish(EventType.API_KEY_INVALID, error.to_payload())
        else:
            self._events.publish(EventType.SOLUTION_ERROR, error.to_payload())
        return RunOutcome(RunStatus.FAILED, error=error, message=error.message)

    async def debug(self) -> RunOutcome:
        """Run debug over the primary and supplementary queues.

        Returns:
            RunOutcome. DEBUGGED on success, NO_SCREENSHOTS when there are no
            supplementary images, FAILED when there is no extracted content
            or the provider fails, CANCELLED when superseded or cancelled.
        """
        role = CaptureRole.SUPPLEMENTARY
        config = self._config_manager.get()

        try:
            extra = self._queues.supplementary.require_existing()
        except QueueEmpty:
            return self._no_screenshots("No additional screenshots to process")

        context = self._problem
        if context is None or self._solution is None:
            message = "No extracted content to debug. Process screenshots first."
            logger.warning(message)
            self._events.publish(EventType.DEBUG_ERROR, {"message": message})
            return RunOutcome(RunStatus.FAILED, message=message)

        images = [*self._queues.primary.existing(), *extra]
        token = self._begin_run(role)
        try:
            client = await self._get_client(config)
        except Exception as e:
            return self._debug_failed(role, token, self._as_provider_error(e, config))
        if client is None:
            return self._missing_key(role, token, config.llm.provider)
        if not self._is_current(role, token):
            return RunOutcome(RunStatus.CANCELLED)

        logger.info(f"Starting debug run with {len(images)} screenshot(s) via {client.kind}")
        self._events.publish(EventType.DEBUG_START)
        self.state = PipelineState.DEBUGGING
        self._events.progress("Processing additional screenshots...", 30)

        try:
            self._events.progress("Analyzing changes and generating feedback...", 60)
            raw_debug = await client.debug(images, context, token)
            if not self._is_current(role, token):
                return RunOutcome(RunStatus.CANCELLED)
        except Exception as e:
            return self._debug_failed(role, token, self._as_provider_error(e, config))

        parsed = parse_debug(raw_debug)
        result = DebugResult(
            code=parsed.code,
            content=parsed.debug_analysis,
            thoughts=parsed.thoughts,
            time_complexity=parsed.time_complexity,
            space_complexity=parsed.space_complexity,
            degraded=parsed.degraded,
            debug_analysis=parsed.debug_analysis,
        )

        self._debug_result = result
        self._has_debugged = True
        self.state = PipelineState.DEBUG_DONE
        self._finish_run(role, token)

        self._events.progress("Debug analysis complete", 100)
        self._events.publish(EventType.DEBUG_SUCCESS, result.to_payload())
        logger.info("Debug run complete")
        return RunOutcome(RunStatus.DEBUGGED, debug_result=result)

    def _debug_failed(self, role: CaptureRole, token: CancelToken, error: ProviderError) -> RunOutcome:
        if error.kind is ProviderErrorKind.CANCELLED or not self._is_current(role, token):
            logger.info("Debug run cancelled")
            return RunOutcome(RunStatus.CANCELLED)

        self._finish_run(role, token)
        self.state = PipelineState.DEBUG_FAILED
        logger.error(f"Debug run failed ({error.kind}): {error.message}")

        if error.kind is ProviderErrorKind.UNAUTHENTICATED:
            self._events.publish(EventType.API_KEY_INVALID, error.to_payload())
        else:
            self._events.publish(EventType.DEBUG_ERROR, error.to_payload())
        return RunOutcome(RunStatus.FAILED, error=error, message=error.message)

    # ------------------------------------------------------------------
    # Cancellation and reset
    # ------------------------------------------------------------------

    def cancel_ongoing(self) -> bool:
        """Cancel every in-flight run.

        Clears the extracted content and the debugged flag. If anything was
        in flight, the view returns to the queue and a no-screenshots event
        tells the UI to reset.

        Returns:
            True if a run was cancelled.
        """
        cancelled = False
        for token in self._tokens.values():
            if token.cancel():
                cancelled = True
        self._tokens.clear()

        self._problem = None
        self._has_debugged = False

        if cancelled:
            logger.info("Cancelled in-flight runs")
            self.state = PipelineState.IDLE
            self.view = View.QUEUE
            self._events.publish(EventType.NO_SCREENSHOTS, {"message": "Processing cancelled"})
        return cancelled

    async def reset(self) -> None:
        """Cancel runs, clear both queues and all results."""
        self.cancel_ongoing()
        await self._queues.clear_all()

        self._problem = None
        self._solution = None
        self._debug_result = None
        self._has_debugged = False
        self.state = PipelineState.IDLE
        self.view = View.QUEUE

        self._events.publish(EventType.RESET)
        logger.info("Pipeline reset")

    async def aclose(self) -> None:
        """Cancel runs and release the provider client."""
        self.cancel_ongoing()
        self._config_manager.unsubscribe(self._on_config_change)
        async with self._client_lock:
            await self._close_client()
