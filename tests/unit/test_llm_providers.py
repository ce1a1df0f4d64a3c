"""Unit tests for LLM provider adapters: OpenAI, Anthropic, Ollama."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import openai
import pytest

from src.config.settings import Settings
from src.utils.errors import LLMError


# ======================================================================
# Shared helpers
# ======================================================================

def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_text_model": "",
        "anthropic_api_key": "test-anthropic",
        "ollama_base_url": "http://localhost:11434",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def _chat_response(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage = MagicMock(total_tokens=100)
    return response


def _openai_error(message: str = "boom") -> openai.APIError:
    return openai.APIError(message=message, request=MagicMock(), body=None)


# ======================================================================
# OpenAI LLM Provider
# ======================================================================


class TestOpenAILLMProvider:
    def test_provider_name(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        assert OpenAILLMProvider(_settings()).get_provider_name() == "openai"
        compatible = OpenAILLMProvider(_settings(openai_base_url="https://api.together.xyz/v1"))
        assert compatible.get_provider_name() == "openai-compatible"

    def test_is_available(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        assert OpenAILLMProvider(_settings()).is_available() is True
        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI"):
            assert OpenAILLMProvider(_settings(openai_api_key="")).is_available() is False

    @pytest.mark.asyncio
    async def test_complete_success(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_chat_response("Pilot approved."))

        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI", return_value=mock_client):
            provider = OpenAILLMProvider(_settings())
            result = await provider.complete("system prompt", "user prompt", temperature=0.2, max_tokens=50)

        assert result == "Pilot approved."
        kwargs = mock_client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][0] == {"role": "system", "content": "system prompt"}
        assert kwargs["messages"][1] == {"role": "user", "content": "user prompt"}
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_complete_api_error(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(side_effect=_openai_error("Rate limit exceeded"))

        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI", return_value=mock_client):
            provider = OpenAILLMProvider(_settings())
            with pytest.raises(LLMError, match="Rate limit exceeded"):
                await provider.complete("system", "user")

    @pytest.mark.asyncio
    async def test_complete_empty_content(self) -> None:
        from src.providers.llm.openai_provider import OpenAILLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_chat_response(""))

        with patch("src.providers.llm.openai_provider.openai.AsyncOpenAI", return_value=mock_client):
            provider = OpenAILLMProvider(_settings())
            with pytest.raises(LLMError, match="empty response"):
                await provider.complete("system", "user")


# ======================================================================
# Anthropic LLM Provider
# ======================================================================


class TestAnthropicLLMProvider:
    def test_basics(self) -> None:
        from src.providers.llm.anthropic_provider import AnthropicLLMProvider

        provider = AnthropicLLMProvider(_settings())
        assert provider.get_provider_name() == "anthropic"
        assert provider.is_available() is True
        assert AnthropicLLMProvider(_settings(anthropic_api_key="")).is_available() is False

    @pytest.mark.asyncio
    async def test_complete_joins_text_blocks(self) -> None:
        from src.providers.llm.anthropic_provider import AnthropicLLMProvider

        response = MagicMock()
        response.content = [
            MagicMock(type="text", text="Acme wants"),
            MagicMock(type="tool_use", text="ignored"),
            MagicMock(type="text", text="a pilot."),
        ]
        response.usage = MagicMock(input_tokens=10, output_tokens=5)
        response.stop_reason = "end_turn"
        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(return_value=response)

        with patch("src.providers.llm.anthropic_provider.anthropic.AsyncAnthropic", return_value=mock_client):
            provider = AnthropicLLMProvider(_settings(anthropic_model="claude-test"))
            result = await provider.complete("system prompt", "question")

        assert result == "Acme wants\na pilot."
        kwargs = mock_client.messages.create.await_args.kwargs
        assert kwargs["system"] == "system prompt"
        assert kwargs["model"] == "claude-test"

    @pytest.mark.asyncio
    async def test_no_text_blocks_raises(self) -> None:
        from src.providers.llm.anthropic_provider import AnthropicLLMProvider

        response = MagicMock()
        response.content = []
        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(return_value=response)

        with patch("src.providers.llm.anthropic_provider.anthropic.AsyncAnthropic", return_value=mock_client):
            with pytest.raises(LLMError, match="no text content"):
                await AnthropicLLMProvider(_settings()).complete("s", "u")

    @pytest.mark.asyncio
    async def test_api_error_raises_llm_error(self) -> None:
        from src.providers.llm.anthropic_provider import AnthropicLLMProvider

        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(
            side_effect=anthropic.APIError(message="overloaded", request=MagicMock(), body=None)
        )

        with patch("src.providers.llm.anthropic_provider.anthropic.AsyncAnthropic", return_value=mock_client):
            provider = AnthropicLLMProvider(_settings())
            with pytest.raises(LLMError, match="overloaded"):
                await provider.complete("s", "u")


# ======================================================================
# Ollama LLM Provider
# ======================================================================


class TestOllamaLLMProvider:
    def test_basics(self) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        provider = OllamaLLMProvider(_settings())
        assert provider.get_provider_name() == "ollama"
        assert provider.is_available() is True

    @pytest.mark.asyncio
    async def test_complete_success(self) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_chat_response("Local answer"))

        with patch("src.providers.llm.ollama_provider.openai.AsyncOpenAI", return_value=mock_client) as ctor:
            provider = OllamaLLMProvider(_settings(ollama_base_url="http://ollama:11434/"))
            result = await provider.complete("s", "u")

        assert result == "Local answer"
        assert ctor.call_args.kwargs["base_url"] == "http://ollama:11434/v1"
        assert mock_client.chat.completions.create.await_args.kwargs["model"] == "llama3.1"

    @pytest.mark.asyncio
    async def test_complete_error(self) -> None:
        from src.providers.llm.ollama_provider import OllamaLLMProvider

        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(side_effect=_openai_error("model not found"))

        with patch("src.providers.llm.ollama_provider.openai.AsyncOpenAI", return_value=mock_client):
            with pytest.raises(LLMError, match="model not found"):
                await OllamaLLMProvider(_settings()).complete("s", "u")


def test_llm_contract_is_completion_only() -> None:
    from src.interfaces.llm_provider import ILLMProvider

    assert ILLMProvider.__abstractmethods__ == {"complete", "get_provider_name", "is_available"}
