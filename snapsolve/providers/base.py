"""Shared machinery for provider clients.

BaseProviderClient turns the three pipeline stages into one abstract
_complete() call per vendor, and owns what every vendor shares:

- per-stage model selection with provider defaults
- the single retry layer (vendor SDK retries are disabled)
- cancellation through the run's CancelToken
- mapping vendor exceptions onto ProviderErrorKind
"""

from __future__ import annotations

import base64
import logging
from abc import abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

import httpx

from snapsolve.core.cancellation import CancelToken, OperationCancelled
from snapsolve.interfaces.provider import (
    ProviderClient,
    ProviderError,
    ProviderErrorKind,
)
from snapsolve.providers import prompts

if TYPE_CHECKING:
    from snapsolve.config.loader import LLMConfig
    from snapsolve.models.images import CapturedImage
    from snapsolve.models.results import ProblemContext

logger = logging.getLogger(__name__)

_UNAUTHENTICATED_PATTERNS = (
    "api key not valid",
    "api_key_invalid",
    "invalid api key",
    "incorrect api key",
    "invalid x-api-key",
    "authentication",
    "unauthorized",
)
_RATE_LIMITED_PATTERNS = (
    "rate limit",
    "rate_limit",
    "resource exhausted",
    "resource_exhausted",
    "too many requests",
    "quota",
)
_PAYLOAD_TOO_LARGE_PATTERNS = (
    "too large",
    "too_large",
    "too long",
    "too many tokens",
    "tokens >",
    "token count",
    "exceeds",
    "context length",
    "context_length",
    "maximum context",
    "token limit",
)
_SERVER_ERROR_PATTERNS = (
    "overloaded",
    "service unavailable",
    "internal error",
    "timed out",
    "timeout",
)


def classify_exception(
    exc: BaseException,
    provider: str,
    status_code: int | None = None,
    transport_error: bool = False,
) -> ProviderError:
    """Map a vendor exception onto a ProviderError.

    The HTTP status wins when known; otherwise the vendor message is matched
    against known phrases.

    Args:
        exc: The exception raised by the vendor SDK.
        provider: Vendor name for the error.
        status_code: HTTP status of the failed request, if any.
        transport_error: Whether the request failed before a response
            arrived (timeout, connection reset).

    Returns:
        ProviderError with a user-facing message and the raw vendor message.
    """
    raw = str(exc) or type(exc).__name__
    lower = raw.lower()

    kind = ProviderErrorKind.UNKNOWN
    if status_code in (401, 403):
        kind = ProviderErrorKind.UNAUTHENTICATED
    elif status_code == 429:
        kind = ProviderErrorKind.RATE_LIMITED
    elif status_code == 413:
        kind = ProviderErrorKind.PAYLOAD_TOO_LARGE
    elif status_code is not None and status_code >= 500:
        kind = ProviderErrorKind.SERVER_ERROR
    elif transport_error:
        kind = ProviderErrorKind.SERVER_ERROR
    elif any(p in lower for p in _UNAUTHENTICATED_PATTERNS):
        kind = ProviderErrorKind.UNAUTHENTICATED
    elif any(p in lower for p in _RATE_LIMITED_PATTERNS):
        kind = ProviderErrorKind.RATE_LIMITED
    elif any(p in lower for p in _PAYLOAD_TOO_LARGE_PATTERNS):
        kind = ProviderErrorKind.PAYLOAD_TOO_LARGE
    elif any(p in lower for p in _SERVER_ERROR_PATTERNS):
        kind = ProviderErrorKind.SERVER_ERROR

    messages = {
        ProviderErrorKind.UNAUTHENTICATED: f"Invalid {provider} API key",
        ProviderErrorKind.RATE_LIMITED: f"{provider} rate limit or quota exceeded",
        ProviderErrorKind.PAYLOAD_TOO_LARGE: f"Request too large for {provider}",
        ProviderErrorKind.SERVER_ERROR: f"{provider} service error",
    }
    message = messages.get(kind, raw)

    return ProviderError(
        kind,
        message,
        provider=provider,
        status_code=status_code,
        raw_message=raw,
    )


def encode_image(image: CapturedImage) -> str:
    """Base64-encode an image's PNG bytes."""
    return base64.b64encode(image.raw_bytes).decode("utf-8")


class BaseProviderClient(ProviderClient):
    """Stage logic, retries and error mapping shared by all vendors.

    Subclasses set DEFAULT_MODEL and implement _complete(). They may override
    _error_details() to read status codes from their SDK's exception types.

    Attributes:
        extraction_model: Model used by extract().
        solution_model: Model used by analyze().
        debugging_model: Model used by debug().
    """

    DEFAULT_MODEL: str = ""

    def __init__(self, config: LLMConfig, api_key: str) -> None:
        """Initialize shared client settings.

        Args:
            config: LLM config section.
            api_key: Resolved vendor API key.

        Raises:
            ValueError: If api_key is empty.
        """
        if not api_key:
            raise ValueError(f"{self.kind} client requires an API key")

        self.extraction_model = config.extraction_model or self.DEFAULT_MODEL
        self.solution_model = config.solution_model or self.DEFAULT_MODEL
        self.debugging_model = config.debugging_model or self.DEFAULT_MODEL
        self.temperature = config.temperature
        self.max_tokens = config.max_tokens
        self.timeout = config.timeout
        self.max_retries = config.max_retries
        self.retry_delay = config.retry_delay

        logger.debug(
            f"{self.kind} client initialized: extraction={self.extraction_model}, "
            f"solution={self.solution_model}, debugging={self.debugging_model}"
        )

    @abstractmethod
    async def _complete(
        self,
        model: str,
        system: str,
        prompt: str,
        images: Sequence[CapturedImage],
    ) -> str:
        """Send one request to the vendor and return its text.

        Vendor exceptions propagate unchanged; _call() classifies them.
        """
        ...

    def _error_details(self, exc: Exception) -> tuple[int | None, bool]:
        """Extract (status_code, transport_error) from a vendor exception."""
        status_code = getattr(exc, "status_code", None)
        if not isinstance(status_code, int):
            status_code = None
        transport_error = isinstance(exc, (httpx.TimeoutException, httpx.TransportError, TimeoutError, ConnectionError))
        return status_code, transport_error

    def classify_error(self, exc: Exception) -> ProviderError:
        """Map a vendor exception onto a ProviderError."""
        status_code, transport_error = self._error_details(exc)
        return classify_exception(exc, self.kind.value, status_code, transport_error)

    def _cancelled(self, stage: str) -> ProviderError:
        return ProviderError(
            ProviderErrorKind.CANCELLED,
            f"{stage} request cancelled",
            provider=self.kind.value,
        )

    async def _call(
        self,
        stage: str,
        token: CancelToken,
        model: str,
        system: str,
        prompt: str,
        images: Sequence[CapturedImage] = (),
    ) -> str:
        """Run one stage request with retries for transient errors.

        Raises:
            ProviderError: On a non-transient error, after the last retry, or
                with kind CANCELLED when the token is cancelled.
        """
        attempt = 0
        while True:
            try:
                text = await token.run(self._complete(model, system, prompt, images))
            except OperationCancelled as e:
                raise self._cancelled(stage) from e
            except ProviderError:
                raise
            except Exception as e:
                error = self.classify_error(e)
                if not error.is_transient or attempt >= self.max_retries:
                    logger.error(f"{self.kind} {stage} failed ({error.kind}): {error.raw_message}")
                    raise error from e

                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    f"{self.kind} {stage} failed (attempt {attempt + 1}/{self.max_retries + 1}): "
                    f"{error.kind}. Retrying in {delay:.1f}s"
                )
                try:
                    await token.sleep(delay)
                except OperationCancelled as cancelled:
                    raise self._cancelled(stage) from cancelled
                attempt += 1
                continue

            if not text or not text.strip():
                raise ProviderError(
                    ProviderErrorKind.UNKNOWN,
                    f"Empty response from {self.kind} during {stage}",
                    provider=self.kind.value,
                )
            logger.debug(f"{self.kind} {stage} returned {len(text)} chars")
            return text

    async def extract(
        self,
        images: Sequence[CapturedImage],
        language: str,
        token: CancelToken,
    ) -> str:
        return await self._call(
            "extract",
            token,
            self.extraction_model,
            prompts.EXTRACTION_SYSTEM_PROMPT,
            prompts.extraction_prompt(language),
            images,
        )

    async def analyze(self, context: ProblemContext, token: CancelToken) -> str:
        return await self._call(
            "analyze",
            token,
            self.solution_model,
            prompts.SOLUTION_SYSTEM_PROMPT,
            prompts.solution_prompt(context.raw_text, context.language),
        )

    async def debug(
        self,
        images: Sequence[CapturedImage],
        context: ProblemContext,
        token: CancelToken,
    ) -> str:
        return await self._call(
            "debug",
            token,
            self.debugging_model,
            prompts.debug_system_prompt(context.language),
            prompts.debug_prompt(context.raw_text),
            images,
        )
