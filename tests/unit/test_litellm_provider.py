"""
Unit Tests for LiteLLMProvider

litellm.acompletion is patched with a fake stream built from
SimpleNamespace chunks shaped like litellm's streaming deltas.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import litellm
import pytest

from agentloop.core.domain.errors import ModelApiError
from agentloop.infrastructure.llm.litellm_provider import LiteLLMProvider, map_litellm_error


def delta_chunk(content=None, tool_calls=None, reasoning=None, usage=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls, reasoning_content=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)], usage=usage)


def tool_delta(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class FakeStream:
    def __init__(self, chunks):
        self.chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk


async def collect(provider, **kwargs):
    return [chunk async for chunk in provider.stream_chat([{"role": "user", "content": "hi"}], **kwargs)]


@pytest.fixture
def provider():
    return LiteLLMProvider(model="gpt-5-mini", provider="openai", api_key="sk-test")


class TestStreamChat:
    """Tests for stream_chat() chunk translation."""

    @pytest.mark.asyncio
    async def test_text_and_usage(self, provider):
        stream = FakeStream(
            [
                delta_chunk(content="Hel"),
                delta_chunk(content="lo"),
                SimpleNamespace(choices=[], usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5)),
            ]
        )
        with patch.object(litellm, "acompletion", AsyncMock(return_value=stream)) as acompletion:
            chunks = await collect(provider)

        assert chunks == [
            {"type": "token", "content": "Hel"},
            {"type": "token", "content": "lo"},
            {"type": "done", "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}},
        ]
        params = acompletion.call_args.kwargs
        assert params["model"] == "gpt-5-mini"
        assert params["stream"] is True
        assert params["api_key"] == "sk-test"
        assert "tools" not in params

    @pytest.mark.asyncio
    async def test_tool_call_fragments_are_assembled(self, provider):
        """Argument fragments are streamed as deltas and joined in tool_call_end."""
        stream = FakeStream(
            [
                delta_chunk(tool_calls=[tool_delta(0, "call_1", "bash", '{"comm')]),
                delta_chunk(tool_calls=[tool_delta(0, arguments='and": "ls"}')]),
                delta_chunk(tool_calls=[tool_delta(1, "call_2", "file_read", "{}")]),
            ]
        )
        tools = [{"type": "function", "function": {"name": "bash"}}]
        with patch.object(litellm, "acompletion", AsyncMock(return_value=stream)) as acompletion:
            chunks = await collect(provider, tools=tools)

        ends = [c for c in chunks if c["type"] == "tool_call_end"]
        assert ends == [
            {"type": "tool_call_end", "id": "call_1", "name": "bash", "index": 0, "arguments": '{"command": "ls"}'},
            {"type": "tool_call_end", "id": "call_2", "name": "file_read", "index": 1, "arguments": "{}"},
        ]
        assert [c["type"] for c in chunks][:3] == ["tool_call_start", "tool_call_delta", "tool_call_delta"]
        assert acompletion.call_args.kwargs["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_reasoning_chunks(self, provider):
        stream = FakeStream([delta_chunk(reasoning="thinking"), delta_chunk(content="answer")])
        with patch.object(litellm, "acompletion", AsyncMock(return_value=stream)) as acompletion:
            chunks = await collect(provider, reasoning=True)

        assert chunks[0] == {"type": "reasoning", "content": "thinking"}
        assert acompletion.call_args.kwargs["reasoning_effort"] == "medium"

    @pytest.mark.asyncio
    async def test_failure_is_mapped(self, provider):
        """Provider failures surface as ModelApiError."""
        with patch.object(litellm, "acompletion", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(ModelApiError) as exc_info:
                await collect(provider)

        assert str(exc_info.value) == "boom"
        assert exc_info.value.retryable is False
        assert exc_info.value.error_type == "RuntimeError"


class TestModelResolution:
    """Tests for the provider prefix applied to model names."""

    def test_openai_models_are_unprefixed(self, provider):
        assert provider._resolve_model(None) == "gpt-5-mini"

    def test_other_providers_are_prefixed(self):
        provider = LiteLLMProvider(model="claude-sonnet", provider="anthropic", api_key="k")
        assert provider._resolve_model(None) == "anthropic/claude-sonnet"
        assert provider._resolve_model("openrouter/x") == "openrouter/x"


class TestErrorMapping:
    """Tests for map_litellm_error()."""

    def test_rate_limit_is_retryable(self):
        error = litellm.exceptions.RateLimitError("slow down", llm_provider="openai", model="gpt-5-mini")

        mapped = map_litellm_error(error)

        assert mapped.retryable is True
        assert mapped.status_code == 429
        assert mapped.error_type == "RateLimitError"

    def test_model_api_error_passes_through(self):
        error = ModelApiError("x", retryable=True)
        assert map_litellm_error(error) is error
