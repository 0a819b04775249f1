"""
LLM Provider Protocol

Port for streaming chat completions. The turn engine consumes the stream as
a sequence of chunk dictionaries:

- {"type": "token", "content": str}
- {"type": "reasoning", "content": str}
- {"type": "tool_call_start", "id": str, "name": str, "index": int}
- {"type": "tool_call_delta", "id": str, "index": int, "arguments_delta": str}
- {"type": "tool_call_end", "id": str, "name": str, "index": int, "arguments": str}
- {"type": "detail", "content": str}
- {"type": "done", "usage": dict}

Failures are raised as ModelApiError with the retryable flag set for
transient classes (rate limits, timeouts, connection problems).
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol


class LLMProviderProtocol(Protocol):
    """Streaming chat-completion provider."""

    def stream_chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Stream one model response.

        Args:
            messages: Conversation history in chat-completions format
            tools: Tool definitions in OpenAI function format
            model: Model identifier overriding the provider default
            **kwargs: Provider-specific options (e.g. reasoning_effort)

        Yields:
            Chunk dictionaries as described in the module docstring

        Raises:
            ModelApiError: On provider or transport failure
        """
        ...
