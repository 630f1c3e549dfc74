"""Gemini provider client.

Uses the google-genai SDK's async surface (client.aio). Images are sent as
inline Part.from_bytes parts after the text prompt.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from snapsolve.interfaces.provider import ProviderKind
from snapsolve.providers.base import BaseProviderClient

if TYPE_CHECKING:
    from snapsolve.config.loader import LLMConfig
    from snapsolve.models.images import CapturedImage

logger = logging.getLogger(__name__)


class GeminiProviderClient(BaseProviderClient):
    """ProviderClient backed by google.genai.Client."""

    kind = ProviderKind.GEMINI
    DEFAULT_MODEL = "gemini-2.0-flash"

    def __init__(
        self,
        config: LLMConfig,
        api_key: str,
        client: genai.Client | None = None,
    ) -> None:
        super().__init__(config, api_key)
        self._client = client or genai.Client(
            api_key=api_key,
            # HttpOptions.timeout is in milliseconds
            http_options=types.HttpOptions(timeout=int(config.timeout * 1000)),
        )

    async def _complete(
        self,
        model: str,
        system: str,
        prompt: str,
        images: Sequence[CapturedImage],
    ) -> str:
        contents: list[Any] = [prompt]
        contents.extend(types.Part.from_bytes(data=image.raw_bytes, mime_type="image/png") for image in images)

        response = await self._client.aio.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system,
                temperature=self.temperature,
                max_output_tokens=self.max_tokens,
            ),
        )
        return response.text or ""

    def _error_details(self, exc: Exception) -> tuple[int | None, bool]:
        if isinstance(exc, genai_errors.APIError):
            code = exc.code if isinstance(exc.code, int) else None
            return code, False
        return super()._error_details(exc)

    async def aclose(self) -> None:
        await self._client.aio.aclose()
