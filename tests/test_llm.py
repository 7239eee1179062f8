"""Tests for the LLM layer: provider selection and both provider clients."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import pytest

from src.config import LLMProvider, Settings
from src.exceptions import ConfigurationError, StructuredOutputError
from src.models import PostTypeResult
from src.tools.claude_client import ClaudeClient
from src.tools.llm import create_llm_client
from src.tools.openai_client import OpenAIClient


def _claude_response(text, input_tokens=10, output_tokens=5):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def _openai_response(text, prompt_tokens=3, completion_tokens=4):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


# =========================================================================
# Provider selection
# =========================================================================


class TestCreateLLMClient:
    def test_default_provider_from_settings(self):
        client = create_llm_client(settings=Settings(openai_model="gpt-test"), api_key="k")
        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-test"

    def test_explicit_provider_wins(self):
        client = create_llm_client("Anthropic", settings=Settings(), api_key="k")
        assert isinstance(client, ClaudeClient)
        assert client.provider == "anthropic"

    def test_enum_provider(self):
        client = create_llm_client(LLMProvider.ANTHROPIC, settings=Settings(), api_key="k")
        assert isinstance(client, ClaudeClient)

    def test_unknown_provider_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
            create_llm_client("gemini", settings=Settings(), api_key="k")

    def test_missing_key_raises(self):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            create_llm_client(settings=Settings())
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            create_llm_client("anthropic", settings=Settings())


# =========================================================================
# Claude
# =========================================================================


class TestClaudeClient:
    @pytest.mark.asyncio
    async def test_generate_text_passes_system_and_tracks_usage(self):
        client = ClaudeClient(api_key="k", model="claude-test")
        client.client.messages.create = AsyncMock(return_value=_claude_response("hello"))

        text = await client.generate_text("prompt", system="be brief", temperature=0.2)

        assert text == "hello"
        kwargs = client.client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "be brief"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert client.usage_stats == {"input_tokens": 10, "output_tokens": 5}

    @pytest.mark.asyncio
    async def test_generate_structured_extracts_fenced_json(self):
        client = ClaudeClient(api_key="k")
        client.client.messages.create = AsyncMock(
            return_value=_claude_response(
                'Sure!\n```json\n{"reason": "launch", "type": "thread"}\n```'
            )
        )

        result = await client.generate_structured("classify", PostTypeResult)

        assert result == PostTypeResult(reason="launch", type="thread")
        prompt = client.client.messages.create.await_args.kwargs["messages"][0]["content"]
        assert prompt.startswith("classify\n\n")
        assert '"reason"' in prompt

    @pytest.mark.asyncio
    async def test_generate_structured_unparseable_raises(self):
        client = ClaudeClient(api_key="k")
        client.client.messages.create = AsyncMock(return_value=_claude_response("no idea"))

        with pytest.raises(StructuredOutputError):
            await client.generate_structured("classify", PostTypeResult)

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        client = ClaudeClient(api_key="k")
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.client.messages.create = AsyncMock(
            side_effect=[anthropic.APIConnectionError(request=request), _claude_response("ok")]
        )

        with patch("src.utils.asyncio.sleep", new_callable=AsyncMock):
            assert await client.generate_text("prompt") == "ok"
        assert client.client.messages.create.await_count == 2


# =========================================================================
# OpenAI
# =========================================================================


class TestOpenAIClient:
    @pytest.mark.asyncio
    async def test_generate_text_with_system_message(self):
        client = OpenAIClient(api_key="k", model="gpt-test")
        client.client.chat.completions.create = AsyncMock(return_value=_openai_response("hi"))

        assert await client.generate_text("prompt", system="sys") == "hi"

        kwargs = client.client.chat.completions.create.await_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "prompt"},
        ]
        assert "response_format" not in kwargs
        assert client.usage_stats == {"input_tokens": 3, "output_tokens": 4}

    @pytest.mark.asyncio
    async def test_generate_structured_sends_json_schema(self):
        client = OpenAIClient(api_key="k")
        client.client.chat.completions.create = AsyncMock(
            return_value=_openai_response('{"reason": "news", "type": "post"}')
        )

        result = await client.generate_structured("classify", PostTypeResult)

        assert result.type == "post"
        response_format = client.client.chat.completions.create.await_args.kwargs[
            "response_format"
        ]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["name"] == "PostTypeResult"

    @pytest.mark.asyncio
    async def test_generate_structured_falls_back_to_extraction(self):
        client = OpenAIClient(api_key="k")
        client.client.chat.completions.create = AsyncMock(
            return_value=_openai_response('Here you go: {"reason": "news", "type": "post"}')
        )

        result = await client.generate_structured("classify", PostTypeResult)
        assert result.reason == "news"
