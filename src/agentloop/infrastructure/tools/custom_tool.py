"""
Custom Tool Adapter

Wraps an externally supplied handler (CustomToolConfig) in the tool
protocol. Handlers may be plain functions or coroutines; plain functions
run in a worker thread so they never block the event loop. A handler that
declares a ``cancel_token`` parameter receives the session's cancellation
token so it can stop at its own checkpoints.
"""

import asyncio
import functools
import inspect
from typing import Any

from agentloop.core.cancellation import CancellationToken
from agentloop.core.domain.config import CustomToolConfig, SideEffect
from agentloop.core.domain.messages import ToolResult
from agentloop.core.interfaces.tools import ToolKind
from agentloop.infrastructure.tools.tool import result_from_dict


class CustomTool:
    """Tool backed by a user-supplied callable."""

    kind = ToolKind.CUSTOM

    def __init__(self, config: CustomToolConfig):
        self.config = config
        self._accepts_token = "cancel_token" in inspect.signature(config.handler).parameters

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def description(self) -> str:
        return self.config.description

    @property
    def parameters_schema(self) -> dict[str, Any]:
        schema = dict(self.config.parameters)
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        return schema

    @property
    def side_effect(self) -> SideEffect:
        return self.config.side_effect

    @property
    def requires_approval(self) -> bool:
        return self.config.requires_approval

    async def invoke(self, arguments: dict[str, Any], cancel_token: CancellationToken) -> ToolResult:
        kwargs = dict(arguments)
        if self._accepts_token:
            kwargs["cancel_token"] = cancel_token

        handler = self.config.handler
        if inspect.iscoroutinefunction(handler):
            result = await handler(**kwargs)
        else:
            result = await asyncio.to_thread(functools.partial(handler, **kwargs))
            if inspect.isawaitable(result):
                result = await result

        if isinstance(result, ToolResult):
            return result
        if isinstance(result, dict) and "success" in result:
            return result_from_dict(result)
        return ToolResult.ok("" if result is None else result)
