"""Provider client factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from snapsolve.interfaces.provider import ProviderClient, ProviderKind
from snapsolve.providers.anthropic_client import AnthropicProviderClient
from snapsolve.providers.gemini_client import GeminiProviderClient
from snapsolve.providers.openai_client import OpenAIProviderClient

if TYPE_CHECKING:
    from snapsolve.config.loader import LLMConfig

logger = logging.getLogger(__name__)

DEFAULT_MODELS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: OpenAIProviderClient.DEFAULT_MODEL,
    ProviderKind.GEMINI: GeminiProviderClient.DEFAULT_MODEL,
    ProviderKind.ANTHROPIC: AnthropicProviderClient.DEFAULT_MODEL,
}


def create_provider_client(config: LLMConfig, api_key: str) -> ProviderClient:
    """Create the client for the configured provider.

    Args:
        config: LLM config section; config.provider selects the vendor.
        api_key: Resolved API key for that vendor.

    Returns:
        A ready ProviderClient.

    Raises:
        ValueError: If the provider is unknown or api_key is empty.
    """
    kind = ProviderKind(config.provider)
    logger.info(f"Creating {kind} provider client")

    match kind:
        case ProviderKind.OPENAI:
            return OpenAIProviderClient(config, api_key)
        case ProviderKind.GEMINI:
            return GeminiProviderClient(config, api_key)
        case ProviderKind.ANTHROPIC:
            return AnthropicProviderClient(config, api_key)
