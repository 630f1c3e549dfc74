"""Provider interface: the capability set every LLM vendor client implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snapsolve.core.cancellation import CancelToken
    from snapsolve.models.images import CapturedImage
    from snapsolve.models.results import ProblemContext


class ProviderKind(StrEnum):
    """Supported LLM vendors."""

    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


class ProviderErrorKind(StrEnum):
    """Vendor-neutral classification of provider failures."""

    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    SERVER_ERROR = "server_error"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


# Kinds that are worth retrying automatically.
TRANSIENT_ERROR_KINDS = frozenset({ProviderErrorKind.RATE_LIMITED, ProviderErrorKind.SERVER_ERROR})

_SUGGESTIONS: dict[ProviderErrorKind, str] = {
    ProviderErrorKind.UNAUTHENTICATED: "Check the API key in your settings.",
    ProviderErrorKind.RATE_LIMITED: "Rate limit or quota exceeded. Wait a few minutes and try again.",
    ProviderErrorKind.PAYLOAD_TOO_LARGE: (
        "The screenshots contain too much information for this provider. "
        "Switch to another provider in your settings."
    ),
    ProviderErrorKind.SERVER_ERROR: "The provider is having trouble. Try again later.",
}


class ProviderError(Exception):
    """Error raised by a provider client.

    Attributes:
        kind: Vendor-neutral error classification.
        provider: Vendor that raised the error, if known.
        status_code: HTTP status code, if the failure had one.
        raw_message: Unmodified vendor message, kept for diagnostics.
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        raw_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.raw_message = raw_message if raw_message is not None else message

    @property
    def is_transient(self) -> bool:
        """Whether an automatic retry may succeed."""
        return self.kind in TRANSIENT_ERROR_KINDS

    @property
    def suggestion(self) -> str | None:
        """User-facing guidance for this kind of error."""
        return _SUGGESTIONS.get(self.kind)

    def to_payload(self) -> dict[str, object]:
        """Serialize for event consumers."""
        return {
            "message": self.message,
            "kind": self.kind.value,
            "provider": self.provider,
            "status_code": self.status_code,
            "suggestion": self.suggestion,
        }

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value!r}, provider={self.provider!r}, message={self.message!r})"


class ProviderClient(ABC):
    """Uniform capability interface over one LLM vendor.

    Each call takes the run's cancellation token; cancelling the token aborts
    the in-flight request and the call raises ProviderError(CANCELLED).
    """

    kind: ProviderKind

    @abstractmethod
    async def extract(
        self,
        images: Sequence[CapturedImage],
        language: str,
        token: CancelToken,
    ) -> str:
        """Extract the content shown in the screenshots.

        Args:
            images: Screenshots to read, in queue order.
            language: Preferred programming language for code answers.
            token: Cancellation token of the current run.

        Returns:
            Free-form model text.

        Raises:
            ProviderError: If the request fails or is cancelled.
        """
        ...

    @abstractmethod
    async def analyze(self, context: ProblemContext, token: CancelToken) -> str:
        """Produce a solution for previously extracted content.

        Args:
            context: Output of the extract stage.
            token: Cancellation token of the current run.

        Returns:
            Free-form model text with a code block, reasoning and complexity.

        Raises:
            ProviderError: If the request fails or is cancelled.
        """
        ...

    @abstractmethod
    async def debug(
        self,
        images: Sequence[CapturedImage],
        context: ProblemContext,
        token: CancelToken,
    ) -> str:
        """Refine a previous answer using additional screenshots.

        Args:
            images: Primary and supplementary screenshots together.
            context: Output of the last extract stage.
            token: Cancellation token of the current run.

        Returns:
            Free-form model text following the debug heading structure.

        Raises:
            ProviderError: If the request fails or is cancelled.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        return None
