"""Anthropic provider client.

Images are sent as base64 image content blocks ahead of the text block; the
system prompt goes in the top-level system parameter.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import anthropic

from snapsolve.interfaces.provider import ProviderKind
from snapsolve.providers.base import BaseProviderClient, encode_image

if TYPE_CHECKING:
    from snapsolve.config.loader import LLMConfig
    from snapsolve.models.images import CapturedImage

logger = logging.getLogger(__name__)


class AnthropicProviderClient(BaseProviderClient):
    """ProviderClient backed by anthropic.AsyncAnthropic."""

    kind = ProviderKind.ANTHROPIC
    DEFAULT_MODEL = "claude-3-7-sonnet-20250219"

    def __init__(
        self,
        config: LLMConfig,
        api_key: str,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        super().__init__(config, api_key)
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=config.timeout,
            max_retries=0,
        )

    async def _complete(
        self,
        model: str,
        system: str,
        prompt: str,
        images: Sequence[CapturedImage],
    ) -> str:
        content: list[dict[str, Any]] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/png",
                    "data": encode_image(image),
                },
            }
            for image in images
        ]
        content.append({"type": "text", "text": prompt})

        message = await self._client.messages.create(
            model=model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": content}],
        )

        # Extract text content from response
        return "".join(block.text for block in message.content if getattr(block, "type", None) == "text")

    def _error_details(self, exc: Exception) -> tuple[int | None, bool]:
        if isinstance(exc, anthropic.APIStatusError):
            return exc.status_code, False
        if isinstance(exc, anthropic.APIConnectionError):
            return None, True
        return super()._error_details(exc)

    async def aclose(self) -> None:
        await self._client.close()
