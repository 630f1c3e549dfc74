"""LLM provider clients.

Three interchangeable vendors implement the ProviderClient interface.
create_provider_client() picks one from config.
"""

from snapsolve.providers.anthropic_client import AnthropicProviderClient
from snapsolve.providers.base import BaseProviderClient, classify_exception
from snapsolve.providers.factory import DEFAULT_MODELS, create_provider_client
from snapsolve.providers.gemini_client import GeminiProviderClient
from snapsolve.providers.openai_client import OpenAIProviderClient

__all__ = [
    "DEFAULT_MODELS",
    "AnthropicProviderClient",
    "BaseProviderClient",
    "GeminiProviderClient",
    "OpenAIProviderClient",
    "classify_exception",
    "create_provider_client",
]
