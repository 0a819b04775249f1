"""
Shared test fixtures.

ScriptedProvider replays canned streaming responses so the turn engine and
the pipeline can be driven deterministically without a model API.
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from agentloop.core.cancellation import CancellationToken
from agentloop.core.channel import Channel
from agentloop.core.domain.config import AgentConfig, SideEffect, create_config
from agentloop.core.domain.errors import ToolCancelledError
from agentloop.core.domain.events import OutputEvent
from agentloop.core.domain.messages import ToolResult
from agentloop.core.interfaces.tools import ToolKind


def text_response(text: str) -> list[dict[str, Any]]:
    """Chunks of a plain text answer."""
    return [{"type": "token", "content": text}, {"type": "done", "usage": {}}]


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> list[dict[str, Any]]:
    """Chunks of a response requesting (call_id, name, arguments) tool calls."""
    chunks: list[dict[str, Any]] = []
    if text:
        chunks.append({"type": "token", "content": text})
    for index, (call_id, name, arguments) in enumerate(calls):
        chunks.append({"type": "tool_call_start", "id": call_id, "name": name, "index": index})
        chunks.append(
            {
                "type": "tool_call_end",
                "id": call_id,
                "name": name,
                "index": index,
                "arguments": json.dumps(arguments),
            }
        )
    chunks.append({"type": "done", "usage": {}})
    return chunks


class ScriptedProvider:
    """
    Fake LLMProviderProtocol.

    Each stream_chat() call consumes the next scripted response (a chunk
    list or an exception to raise). The last response repeats once the
    script is exhausted.
    """

    def __init__(self, responses: list[Any]):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def stream_chat(self, messages, tools=None, model=None, **kwargs):
        self.calls.append({"messages": messages, "tools": tools, "model": model, **kwargs})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        for chunk in response:
            if chunk.get("type") == "sleep":
                await asyncio.sleep(chunk["seconds"])
                continue
            yield chunk


class FakeTool:
    """Configurable tool implementing ToolProtocol."""

    kind = ToolKind.CUSTOM

    def __init__(
        self,
        name: str = "echo",
        side_effect: SideEffect = SideEffect.NONE,
        requires_approval: bool = False,
        delay: float = 0.0,
        ignore_cancel: bool = False,
        error: Exception | None = None,
        schema: dict[str, Any] | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.name = name
        self.description = f"Fake tool {name}"
        self.parameters_schema = schema or {"type": "object", "properties": {}}
        self.side_effect = side_effect
        self.requires_approval = requires_approval
        self.delay = delay
        self.ignore_cancel = ignore_cancel
        self.error = error
        self.gate = gate
        self.invocations: list[dict[str, Any]] = []
        self.active = 0
        self.max_active = 0

    async def invoke(self, arguments: dict[str, Any], cancel_token: CancellationToken) -> ToolResult:
        self.invocations.append(arguments)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                if self.ignore_cancel:
                    await asyncio.sleep(self.delay)
                else:
                    await _sleep_or_cancel(self.delay, cancel_token)
            if self.error is not None:
                raise self.error
            return ToolResult.ok(f"{self.name}:{json.dumps(arguments, sort_keys=True)}")
        finally:
            self.active -= 1


async def _sleep_or_cancel(delay: float, cancel_token: CancellationToken) -> None:
    try:
        await asyncio.wait_for(cancel_token.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise ToolCancelledError("stopped")


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def next_event(channel: Channel, event_type) -> OutputEvent:
    """Read events until one of the given type arrives."""
    while True:
        event = await asyncio.wait_for(channel.receive(), timeout=2.0)
        if event.type == event_type:
            return event


async def drain(channel: Channel) -> list[OutputEvent]:
    return [event async for event in channel]


@pytest.fixture
def make_config(tmp_path) -> Callable[..., AgentConfig]:
    """Factory for configs rooted in a temporary working directory."""

    def factory(**overrides: Any) -> AgentConfig:
        values: dict[str, Any] = {"working_directory": tmp_path, "retry_policy": {"initial_backoff": 0.0}}
        values.update(overrides)
        return create_config(**values)

    return factory
