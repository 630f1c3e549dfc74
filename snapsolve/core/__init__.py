"""Core pipeline package.

This package provides:
- CancelToken: Cooperative cancellation for one pipeline run
- PipelineOrchestrator (core.orchestrator): Solve and debug runs
- SessionController (core.session): Boundary operations for the UI

Only the cancellation primitives are re-exported here; provider clients
depend on them, and the orchestrator depends on the provider clients.
"""

from snapsolve.core.cancellation import CancelToken, OperationCancelled

__all__ = ["CancelToken", "OperationCancelled"]
