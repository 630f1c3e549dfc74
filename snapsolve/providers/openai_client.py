"""OpenAI provider client.

Images are sent as image_url parts carrying data URLs inside a single user
message, alongside a system message.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import openai

from snapsolve.interfaces.provider import ProviderKind
from snapsolve.providers.base import BaseProviderClient, encode_image

if TYPE_CHECKING:
    from snapsolve.config.loader import LLMConfig
    from snapsolve.models.images import CapturedImage

logger = logging.getLogger(__name__)


class OpenAIProviderClient(BaseProviderClient):
    """ProviderClient backed by openai.AsyncOpenAI."""

    kind = ProviderKind.OPENAI
    DEFAULT_MODEL = "gpt-4o"

    def __init__(
        self,
        config: LLMConfig,
        api_key: str,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: LLM config section.
            api_key: OpenAI API key.
            client: Preconfigured SDK client, mainly for tests.
        """
        super().__init__(config, api_key)
        self._client = client or openai.AsyncOpenAI(
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
        content: str | list[dict[str, Any]] = prompt
        if images:
            content = [{"type": "text", "text": prompt}]
            for image in images:
                content.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{encode_image(image)}"},
                    }
                )

        response = await self._client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return response.choices[0].message.content or ""

    def _error_details(self, exc: Exception) -> tuple[int | None, bool]:
        if isinstance(exc, openai.APIStatusError):
            return exc.status_code, False
        if isinstance(exc, openai.APIConnectionError):
            return None, True
        return super()._error_details(exc)

    async def aclose(self) -> None:
        await self._client.close()
