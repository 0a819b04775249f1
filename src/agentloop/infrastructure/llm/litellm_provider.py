"""
LiteLLM Provider

Streaming chat-completion provider backed by litellm. Streamed deltas are
translated into the chunk dictionaries consumed by the turn engine, and
litellm exceptions are mapped onto ModelApiError with a retryable flag for
transient failure classes. Retrying itself is left to the turn engine.
"""

import os
import time
from collections.abc import AsyncIterator
from typing import Any

import litellm
import structlog

from agentloop.core.domain.errors import ModelApiError

# Transient failure classes worth retrying with backoff
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    litellm.exceptions.RateLimitError,
    litellm.exceptions.Timeout,
    litellm.exceptions.APIConnectionError,
    litellm.exceptions.InternalServerError,
    litellm.exceptions.ServiceUnavailableError,
)

DEFAULT_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def map_litellm_error(error: Exception) -> ModelApiError:
    """Translate a litellm (or transport) exception into a ModelApiError."""
    if isinstance(error, ModelApiError):
        return error
    return ModelApiError(
        str(error) or type(error).__name__,
        retryable=isinstance(error, RETRYABLE_ERRORS),
        status_code=getattr(error, "status_code", None),
        error_type=type(error).__name__,
    )


class LiteLLMProvider:
    """
    Streaming provider for any model litellm supports.

    Args:
        model: Default model identifier (e.g. "gpt-5-mini")
        provider: Provider prefix used when the model has none (e.g. "anthropic")
        api_key: API key; falls back to the provider's environment variable
        request_timeout: Per-request timeout in seconds
        reasoning_effort: Effort passed to reasoning models when reasoning is enabled
    """

    def __init__(
        self,
        model: str = "gpt-5-mini",
        provider: str = "openai",
        api_key: str | None = None,
        request_timeout: float = 120.0,
        reasoning_effort: str = "medium",
    ):
        self.model = model
        self.provider = provider
        self.api_key = api_key or os.getenv(DEFAULT_API_KEY_ENV.get(provider, ""), None)
        self.request_timeout = request_timeout
        self.reasoning_effort = reasoning_effort
        self.logger = structlog.get_logger().bind(component="litellm_provider")

        if not self.api_key:
            self.logger.warning(
                "api_key_missing",
                provider=provider,
                env_var=DEFAULT_API_KEY_ENV.get(provider),
                hint="Set environment variable for API access",
            )

    def _resolve_model(self, model: str | None) -> str:
        name = model or self.model
        if "/" in name or self.provider in ("", "openai"):
            return name
        return f"{self.provider}/{name}"

    def _build_params(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        reasoning: bool,
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
            "timeout": self.request_timeout,
            "stream_options": {"include_usage": True},
        }
        if self.api_key:
            params["api_key"] = self.api_key
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        if reasoning:
            params["reasoning_effort"] = self.reasoning_effort
        params.update(extra)
        return params

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        reasoning: bool = False,
        **kwargs: Any,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Stream one completion as chunk dictionaries.

        Yields:
            token / reasoning / tool_call_start / tool_call_delta /
            tool_call_end / done chunks

        Raises:
            ModelApiError: On any provider or transport failure
        """
        actual_model = self._resolve_model(model)
        params = self._build_params(actual_model, messages, tools, reasoning, kwargs)
        start_time = time.time()
        self.logger.info(
            "llm_stream_started",
            model=actual_model,
            message_count=len(messages),
            tools=len(tools or []),
        )

        # index -> {"id", "name", "arguments"}
        tool_calls: dict[int, dict[str, str]] = {}
        usage: dict[str, Any] = {}

        try:
            response = await litellm.acompletion(**params)
            async for chunk in response:
                chunk_usage = getattr(chunk, "usage", None)
                if chunk_usage:
                    usage = {
                        "prompt_tokens": getattr(chunk_usage, "prompt_tokens", 0),
                        "completion_tokens": getattr(chunk_usage, "completion_tokens", 0),
                        "total_tokens": getattr(chunk_usage, "total_tokens", 0),
                    }
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta

                reasoning_text = getattr(delta, "reasoning_content", None)
                if reasoning_text:
                    yield {"type": "reasoning", "content": reasoning_text}

                if getattr(delta, "content", None):
                    yield {"type": "token", "content": delta.content}

                for tc in getattr(delta, "tool_calls", None) or []:
                    index = tc.index if tc.index is not None else 0
                    function = tc.function
                    if index not in tool_calls:
                        tool_calls[index] = {
                            "id": tc.id or f"call_{index}",
                            "name": (function.name if function else "") or "",
                            "arguments": "",
                        }
                        yield {
                            "type": "tool_call_start",
                            "id": tool_calls[index]["id"],
                            "name": tool_calls[index]["name"],
                            "index": index,
                        }
                    elif function and function.name and not tool_calls[index]["name"]:
                        tool_calls[index]["name"] = function.name

                    if function and function.arguments:
                        tool_calls[index]["arguments"] += function.arguments
                        yield {
                            "type": "tool_call_delta",
                            "id": tool_calls[index]["id"],
                            "index": index,
                            "arguments_delta": function.arguments,
                        }
        except Exception as e:
            error = map_litellm_error(e)
            self.logger.error(
                "llm_stream_failed",
                model=actual_model,
                error_type=error.error_type,
                error=str(error)[:200],
                retryable=error.retryable,
            )
            raise error from e

        for index, tc in sorted(tool_calls.items()):
            yield {
                "type": "tool_call_end",
                "id": tc["id"],
                "name": tc["name"],
                "index": index,
                "arguments": tc["arguments"],
            }

        self.logger.info(
            "llm_stream_completed",
            model=actual_model,
            tokens=usage.get("total_tokens", 0),
            latency_ms=int((time.time() - start_time) * 1000),
        )
        yield {"type": "done", "usage": usage}
