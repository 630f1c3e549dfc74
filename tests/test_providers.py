"""Tests for LLM provider clients.

These tests verify:
- Vendor errors map onto the vendor-neutral error kinds
- Only transient errors are retried, with exponential backoff
- Cancellation aborts requests and surfaces as CANCELLED
- Each vendor client builds its request in the vendor's shape
- The factory picks the client for the configured provider
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest
from google.genai import errors as genai_errors

from snapsolve.config.loader import LLMConfig
from snapsolve.core.cancellation import CancelToken
from snapsolve.interfaces.provider import ProviderError, ProviderErrorKind, ProviderKind
from snapsolve.models.images import CapturedImage, CaptureRole
from snapsolve.models.results import ProblemContext
from snapsolve.providers import (
    DEFAULT_MODELS,
    AnthropicProviderClient,
    BaseProviderClient,
    GeminiProviderClient,
    OpenAIProviderClient,
    classify_exception,
    create_provider_client,
)
from snapsolve.providers import prompts

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
ANTHROPIC_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def make_image(tmp_path: Path, name: str = "a", data: bytes = b"png") -> CapturedImage:
    return CapturedImage(id=name, role=CaptureRole.PRIMARY, raw_bytes=data, path=tmp_path / f"{name}.png")


class FakeClient(BaseProviderClient):
    """Minimal concrete client; _complete is replaced per test."""

    kind = ProviderKind.OPENAI
    DEFAULT_MODEL = "fake-model"

    async def _complete(self, model, system, prompt, images):
        return "ok"


@pytest.fixture
def config() -> LLMConfig:
    return LLMConfig(max_retries=2, retry_delay=0.5)


@pytest.fixture
def token() -> CancelToken:
    return CancelToken("test")


class TestClassifyException:
    """Tests for classify_exception()."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ProviderErrorKind.UNAUTHENTICATED),
            (403, ProviderErrorKind.UNAUTHENTICATED),
            (429, ProviderErrorKind.RATE_LIMITED),
            (413, ProviderErrorKind.PAYLOAD_TOO_LARGE),
            (500, ProviderErrorKind.SERVER_ERROR),
            (503, ProviderErrorKind.SERVER_ERROR),
            (400, ProviderErrorKind.UNKNOWN),
        ],
    )
    def test_status_codes(self, status, kind):
        """The HTTP status decides the kind when present."""
        error = classify_exception(RuntimeError("boom"), "openai", status_code=status)

        assert error.kind == kind
        assert error.status_code == status

    @pytest.mark.parametrize(
        ("message", "kind"),
        [
            ("API key not valid. Please pass a valid API key.", ProviderErrorKind.UNAUTHENTICATED),
            ("429 RESOURCE_EXHAUSTED", ProviderErrorKind.RATE_LIMITED),
            ("You exceeded your current quota", ProviderErrorKind.RATE_LIMITED),
            ("prompt is too long: context length exceeded", ProviderErrorKind.PAYLOAD_TOO_LARGE),
            ("Overloaded", ProviderErrorKind.SERVER_ERROR),
            ("something odd", ProviderErrorKind.UNKNOWN),
        ],
    )
    def test_message_patterns(self, message, kind):
        """Without a status, known phrases in the message decide."""
        assert classify_exception(RuntimeError(message), "gemini").kind == kind

    def test_transport_error_is_server_error(self):
        """Timeouts and dropped connections are transient server errors."""
        error = classify_exception(RuntimeError("reset"), "anthropic", transport_error=True)

        assert error.kind == ProviderErrorKind.SERVER_ERROR
        assert error.is_transient is True

    def test_friendly_message_keeps_raw(self):
        """The user sees a friendly message; the vendor text is preserved."""
        error = classify_exception(RuntimeError("Incorrect API key provided: sk-..."), "openai", 401)

        assert error.message == "Invalid openai API key"
        assert error.raw_message == "Incorrect API key provided: sk-..."
        assert error.provider == "openai"
        assert error.suggestion is not None

    def test_unknown_keeps_vendor_message(self):
        """Unclassified errors show the vendor message."""
        error = classify_exception(ValueError("weird failure"), "openai")

        assert error.message == "weird failure"
        assert error.is_transient is False

    def test_payload(self):
        """to_payload() exposes the fields consumers need."""
        payload = classify_exception(RuntimeError("x"), "openai", 429).to_payload()

        assert payload["kind"] == "rate_limited"
        assert payload["provider"] == "openai"
        assert payload["status_code"] == 429


class TestBaseClientSetup:
    """Tests for shared client settings."""

    def test_requires_api_key(self, config):
        """An empty key is rejected up front."""
        with pytest.raises(ValueError, match="API key"):
            FakeClient(config, "")

    def test_stage_models_fall_back_to_default(self, config):
        """Unset stage models use the provider default."""
        client = FakeClient(config, "key")

        assert client.extraction_model == "fake-model"
        assert client.solution_model == "fake-model"
        assert client.debugging_model == "fake-model"

    def test_stage_models_from_config(self):
        """Configured stage models are used as given."""
        config = LLMConfig(extraction_model="a", solution_model="b", debugging_model="c")
        client = FakeClient(config, "key")

        assert (client.extraction_model, client.solution_model, client.debugging_model) == ("a", "b", "c")


class TestRetries:
    """Tests for the retry layer in _call()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, config, token, tmp_path):
        """A good response is returned once, without sleeping."""
        client = FakeClient(config, "key")
        with patch.object(client, "_complete", new=AsyncMock(return_value="answer")) as complete:
            result = await client.extract([make_image(tmp_path)], "python", token)

        assert result == "answer"
        complete.assert_awaited_once()
        model, system, prompt, images = complete.await_args.args
        assert model == "fake-model"
        assert system == prompts.EXTRACTION_SYSTEM_PROMPT
        assert "python" in prompt
        assert len(images) == 1

    @pytest.mark.asyncio
    async def test_transient_error_retried_with_backoff(self, config, token):
        """Rate limits are retried with doubling delays."""
        client = FakeClient(config, "key")
        complete = AsyncMock(side_effect=[RuntimeError("rate limit"), RuntimeError("rate limit"), "finally"])

        with patch.object(client, "_complete", new=complete), patch.object(
            CancelToken, "sleep", new=AsyncMock()
        ) as sleep:
            result = await client.extract([], "python", token)

        assert result == "finally"
        assert complete.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, config, token):
        """After max_retries the last error is raised."""
        client = FakeClient(config, "key")
        complete = AsyncMock(side_effect=RuntimeError("Service Unavailable"))

        with patch.object(client, "_complete", new=complete), patch.object(CancelToken, "sleep", new=AsyncMock()):
            with pytest.raises(ProviderError) as exc_info:
                await client.extract([], "python", token)

        assert exc_info.value.kind == ProviderErrorKind.SERVER_ERROR
        assert complete.await_count == 3
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_non_transient_not_retried(self, config, token):
        """Auth failures fail immediately."""
        client = FakeClient(config, "key")
        complete = AsyncMock(side_effect=RuntimeError("invalid api key"))

        with patch.object(client, "_complete", new=complete):
            with pytest.raises(ProviderError) as exc_info:
                await client.extract([], "python", token)

        assert exc_info.value.kind == ProviderErrorKind.UNAUTHENTICATED
        assert complete.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self, token):
        """max_retries=0 means a single attempt."""
        client = FakeClient(LLMConfig(max_retries=0), "key")
        complete = AsyncMock(side_effect=RuntimeError("rate limit"))

        with patch.object(client, "_complete", new=complete):
            with pytest.raises(ProviderError) as exc_info:
                await client.extract([], "python", token)

        assert exc_info.value.kind == ProviderErrorKind.RATE_LIMITED
        assert complete.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_response_is_error(self, config, token):
        """Whitespace-only output is not a usable response."""
        client = FakeClient(config, "key")

        with patch.object(client, "_complete", new=AsyncMock(return_value="  \n")):
            with pytest.raises(ProviderError) as exc_info:
                await client.extract([], "python", token)

        assert exc_info.value.kind == ProviderErrorKind.UNKNOWN
        assert "Empty response" in exc_info.value.message


class TestCancellation:
    """Tests for cancellation through the run token."""

    @pytest.mark.asyncio
    async def test_cancel_during_request(self, config, token):
        """Cancelling the token aborts the in-flight request."""
        client = FakeClient(config, "key")
        entered = asyncio.Event()

        async def hang(*args):
            entered.set()
            await asyncio.Event().wait()

        with patch.object(client, "_complete", new=hang):
            task = asyncio.create_task(client.extract([], "python", token))
            await entered.wait()
            token.cancel()

            with pytest.raises(ProviderError) as exc_info:
                await task

        assert exc_info.value.kind == ProviderErrorKind.CANCELLED

    @pytest.mark.asyncio
    async def test_response_after_cancel_discarded(self, config, token):
        """A response that lands after cancel() is not returned."""
        client = FakeClient(config, "key")

        async def respond_late(*args):
            token.cancel()
            return "stale answer"

        with patch.object(client, "_complete", new=respond_late):
            with pytest.raises(ProviderError) as exc_info:
                await client.extract([], "python", token)

        assert exc_info.value.kind == ProviderErrorKind.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self, config, token):
        """Cancelling while waiting to retry stops the retries."""
        client = FakeClient(LLMConfig(max_retries=2, retry_delay=30.0), "key")
        complete = AsyncMock(side_effect=RuntimeError("rate limit"))

        with patch.object(client, "_complete", new=complete):
            task = asyncio.create_task(client.extract([], "python", token))
            while complete.await_count == 0:
                await asyncio.sleep(0)
            await asyncio.sleep(0)
            token.cancel()

            with pytest.raises(ProviderError) as exc_info:
                await asyncio.wait_for(task, timeout=1)

        assert exc_info.value.kind == ProviderErrorKind.CANCELLED
        assert complete.await_count == 1


class TestStagePrompts:
    """Tests for the analyze and debug stages."""

    @pytest.mark.asyncio
    async def test_analyze_uses_solution_model_and_context(self, token):
        """analyze() sends the extracted text with no images."""
        client = FakeClient(LLMConfig(solution_model="solver"), "key")
        context = ProblemContext(raw_text="Reverse a linked list", language="go")

        with patch.object(client, "_complete", new=AsyncMock(return_value="x")) as complete:
            await client.analyze(context, token)

        model, system, prompt, images = complete.await_args.args
        assert model == "solver"
        assert system == prompts.SOLUTION_SYSTEM_PROMPT
        assert "Reverse a linked list" in prompt
        assert "go" in prompt
        assert list(images) == []

    @pytest.mark.asyncio
    async def test_debug_sends_images_and_headings(self, token, tmp_path):
        """debug() asks for the fixed section headings."""
        client = FakeClient(LLMConfig(debugging_model="debugger"), "key")
        context = ProblemContext(raw_text="Two sum", language="rust")
        images = [make_image(tmp_path, "a"), make_image(tmp_path, "b")]

        with patch.object(client, "_complete", new=AsyncMock(return_value="x")) as complete:
            await client.debug(images, context, token)

        model, system, prompt, sent = complete.await_args.args
        assert model == "debugger"
        for heading in prompts.DEBUG_SECTION_HEADINGS:
            assert heading in system
        assert "Two sum" in prompt
        assert len(sent) == 2


class TestOpenAIClient:
    """Tests for the OpenAI request shape and error details."""

    @pytest.fixture
    def sdk(self):
        sdk = MagicMock()
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="openai answer"))]
        sdk.chat.completions.create = AsyncMock(return_value=response)
        sdk.close = AsyncMock()
        return sdk

    @pytest.mark.asyncio
    async def test_images_sent_as_data_urls(self, sdk, token, tmp_path):
        """Images become image_url parts after the text part."""
        client = OpenAIProviderClient(LLMConfig(), "sk-test", client=sdk)

        result = await client.extract([make_image(tmp_path, data=b"\x89PNG")], "python", token)

        assert result == "openai answer"
        kwargs = sdk.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["max_tokens"] == 4000
        system, user = kwargs["messages"]
        assert system["role"] == "system"
        assert user["content"][0]["type"] == "text"
        assert user["content"][1]["image_url"]["url"] == "data:image/png;base64,iVBORw=="

    @pytest.mark.asyncio
    async def test_text_only_content_is_string(self, sdk, token):
        """Without images the user content is a plain string."""
        client = OpenAIProviderClient(LLMConfig(), "sk-test", client=sdk)

        await client.analyze(ProblemContext(raw_text="task"), token)

        user = sdk.chat.completions.create.await_args.kwargs["messages"][1]
        assert isinstance(user["content"], str)

    @pytest.mark.asyncio
    async def test_status_error_classified(self, sdk, token):
        """SDK status errors carry their HTTP status into the kind."""
        sdk.chat.completions.create.side_effect = openai.RateLimitError(
            "Rate limit reached",
            response=httpx.Response(429, request=OPENAI_REQUEST),
            body=None,
        )
        client = OpenAIProviderClient(LLMConfig(max_retries=0), "sk-test", client=sdk)

        with pytest.raises(ProviderError) as exc_info:
            await client.analyze(ProblemContext(raw_text="task"), token)

        assert exc_info.value.kind == ProviderErrorKind.RATE_LIMITED
        assert exc_info.value.status_code == 429

    def test_context_length_bad_request_classified(self):
        """A context overflow 400 maps to PAYLOAD_TOO_LARGE."""
        client = OpenAIProviderClient(LLMConfig(), "sk-test", client=MagicMock())
        exc = openai.BadRequestError(
            "This model's maximum context length is 128000 tokens. "
            "However, your messages resulted in 131072 tokens.",
            response=httpx.Response(400, request=OPENAI_REQUEST),
            body=None,
        )

        error = client.classify_error(exc)

        assert error.kind == ProviderErrorKind.PAYLOAD_TOO_LARGE

    def test_connection_error_is_transport(self):
        """Connection failures are transient server errors."""
        client = OpenAIProviderClient(LLMConfig(), "sk-test", client=MagicMock())

        error = client.classify_error(openai.APIConnectionError(request=OPENAI_REQUEST))

        assert error.kind == ProviderErrorKind.SERVER_ERROR

    @pytest.mark.asyncio
    async def test_aclose(self, sdk):
        client = OpenAIProviderClient(LLMConfig(), "sk-test", client=sdk)

        await client.aclose()

        sdk.close.assert_awaited_once()


class TestAnthropicClient:
    """Tests for the Anthropic request shape and error details."""

    @pytest.fixture
    def sdk(self):
        sdk = MagicMock()
        message = MagicMock()
        message.content = [
            MagicMock(type="text", text="part one "),
            MagicMock(type="tool_use", text="ignored"),
            MagicMock(type="text", text="part two"),
        ]
        sdk.messages.create = AsyncMock(return_value=message)
        sdk.close = AsyncMock()
        return sdk

    @pytest.mark.asyncio
    async def test_image_blocks_before_text(self, sdk, token, tmp_path):
        """Images lead the content; the system prompt is top-level."""
        client = AnthropicProviderClient(LLMConfig(), "sk-ant", client=sdk)

        result = await client.extract([make_image(tmp_path)], "python", token)

        assert result == "part one part two"
        kwargs = sdk.messages.create.await_args.kwargs
        assert kwargs["model"] == AnthropicProviderClient.DEFAULT_MODEL
        assert kwargs["system"] == prompts.EXTRACTION_SYSTEM_PROMPT
        content = kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/png"
        assert content[-1]["type"] == "text"

    def test_auth_error_classified(self):
        """401 responses map to UNAUTHENTICATED."""
        client = AnthropicProviderClient(LLMConfig(), "sk-ant", client=MagicMock())
        exc = anthropic.AuthenticationError(
            "invalid x-api-key",
            response=httpx.Response(401, request=ANTHROPIC_REQUEST),
            body=None,
        )

        error = client.classify_error(exc)

        assert error.kind == ProviderErrorKind.UNAUTHENTICATED
        assert error.message == "Invalid anthropic API key"

    @pytest.mark.parametrize(
        "message",
        [
            "prompt is too long: 215000 tokens > 200000 maximum",
            "messages.0.content.0.image.source.base64: image exceeds 5 MB maximum: 7340032 bytes > 5242880 bytes",
        ],
    )
    def test_too_large_bad_request_classified(self, message):
        """Context and image overflow arrive as 400s and map to PAYLOAD_TOO_LARGE."""
        client = AnthropicProviderClient(LLMConfig(), "sk-ant", client=MagicMock())
        exc = anthropic.BadRequestError(
            message,
            response=httpx.Response(400, request=ANTHROPIC_REQUEST),
            body=None,
        )

        error = client.classify_error(exc)

        assert error.kind == ProviderErrorKind.PAYLOAD_TOO_LARGE
        assert "switch" in error.suggestion.lower()


class TestGeminiClient:
    """Tests for the Gemini request shape and error details."""

    @pytest.fixture
    def sdk(self):
        sdk = MagicMock()
        sdk.aio.models.generate_content = AsyncMock(return_value=MagicMock(text="gemini answer"))
        sdk.aio.aclose = AsyncMock()
        return sdk

    @pytest.mark.asyncio
    async def test_prompt_then_image_parts(self, sdk, token, tmp_path):
        """The prompt leads, followed by inline image parts."""
        client = GeminiProviderClient(LLMConfig(temperature=0.1), "g-key", client=sdk)

        result = await client.extract([make_image(tmp_path)], "python", token)

        assert result == "gemini answer"
        kwargs = sdk.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert isinstance(kwargs["contents"][0], str)
        assert len(kwargs["contents"]) == 2
        assert kwargs["config"].system_instruction == prompts.EXTRACTION_SYSTEM_PROMPT
        assert kwargs["config"].temperature == 0.1

    def test_api_error_code_used(self):
        """APIError codes act as HTTP statuses."""
        client = GeminiProviderClient(LLMConfig(), "g-key", client=MagicMock())
        exc = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}}
        )

        error = client.classify_error(exc)

        assert error.kind == ProviderErrorKind.RATE_LIMITED
        assert error.status_code == 429

    def test_token_count_overflow_classified(self):
        """INVALID_ARGUMENT token overflows map to PAYLOAD_TOO_LARGE."""
        client = GeminiProviderClient(LLMConfig(), "g-key", client=MagicMock())
        exc = genai_errors.ClientError(
            400,
            {
                "error": {
                    "code": 400,
                    "message": "The input token count (1200000) exceeds the maximum number of tokens allowed (1048576).",
                    "status": "INVALID_ARGUMENT",
                }
            },
        )

        error = client.classify_error(exc)

        assert error.kind == ProviderErrorKind.PAYLOAD_TOO_LARGE
        assert error.status_code == 400

    @pytest.mark.asyncio
    async def test_aclose(self, sdk):
        client = GeminiProviderClient(LLMConfig(), "g-key", client=sdk)

        await client.aclose()

        sdk.aio.aclose.assert_awaited_once()


class TestFactory:
    """Tests for create_provider_client()."""

    @pytest.mark.parametrize(
        ("provider", "cls"),
        [
            ("openai", OpenAIProviderClient),
            ("gemini", GeminiProviderClient),
            ("anthropic", AnthropicProviderClient),
        ],
    )
    def test_creates_configured_client(self, provider, cls):
        """The configured provider selects the client class."""
        client = create_provider_client(LLMConfig(provider=provider), "key")

        assert isinstance(client, cls)
        assert client.kind == ProviderKind(provider)
        assert client.solution_model == DEFAULT_MODELS[ProviderKind(provider)]

    def test_missing_key_rejected(self):
        with pytest.raises(ValueError):
            create_provider_client(LLMConfig(provider="openai"), "")
