# ============================================
# BASE TOOL INTERFACE
# ============================================
"""
Base class for built-in tools.

Subclasses implement execute(**kwargs) returning a result dict with at
least a "success" key; invoke() adapts that dict to the ToolResult used by
the dispatcher. The parameter schema is generated from the execute()
signature unless a subclass overrides parameters_schema.
"""

import inspect
import json
from abc import ABC, abstractmethod
from typing import Any

from agentloop.core.cancellation import CancellationToken
from agentloop.core.domain.config import SideEffect
from agentloop.core.domain.messages import ToolResult
from agentloop.core.interfaces.tools import ToolKind

_ANNOTATION_TYPES = {
    int: "integer",
    bool: "boolean",
    float: "number",
    dict: "object",
    list: "array",
}

# Keys of an execute() result that are not part of the output payload
_RESERVED_KEYS = ("success", "error", "metadata")


class Tool(ABC):
    """Base class for all built-in tools"""

    kind = ToolKind.BUILTIN
    side_effect = SideEffect.NONE
    requires_approval = False

    def __init__(self) -> None:
        self._cancel_token: CancellationToken | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """Override to provide a custom parameter schema for function calling"""
        return self._generate_schema_from_signature()

    def _generate_schema_from_signature(self) -> dict[str, Any]:
        """Auto-generate parameter schema from execute method signature"""
        sig = inspect.signature(self.execute)
        properties = {}
        required = []

        for param_name, param in sig.parameters.items():
            if param.kind in (inspect.Parameter.VAR_KEYWORD, inspect.Parameter.VAR_POSITIONAL):
                continue

            param_type = _ANNOTATION_TYPES.get(param.annotation, "string")
            properties[param_name] = {
                "type": param_type,
                "description": f"Parameter {param_name}",
            }
            if param.default == inspect.Parameter.empty:
                required.append(param_name)

        return {"type": "object", "properties": properties, "required": required}

    @property
    def cancel_token(self) -> CancellationToken:
        return self._cancel_token or CancellationToken()

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        pass

    async def invoke(self, arguments: dict[str, Any], cancel_token: CancellationToken) -> ToolResult:
        """Run execute() with the session's cancellation token and adapt its result."""
        self._cancel_token = cancel_token
        cancel_token.raise_if_cancelled()
        result = await self.execute(**arguments)
        return result_from_dict(result)


def result_from_dict(result: Any) -> ToolResult:
    """
    Convert a tool result dict into a ToolResult.

    {"success": True, "output": "..."} keeps the output text; any other
    payload keys are serialized as the JSON output. Failed results carry
    their "error" text.
    """
    if not isinstance(result, dict):
        return ToolResult.failure(f"Tool returned invalid type: {type(result).__name__}")

    if not result.get("success", False):
        return ToolResult.failure(str(result.get("error") or "Tool reported failure"))

    metadata = result.get("metadata") or {}
    payload = {k: v for k, v in result.items() if k not in _RESERVED_KEYS}
    if set(payload) == {"output"} and isinstance(payload["output"], str):
        return ToolResult.ok(payload["output"], **metadata)
    return ToolResult.ok(json.dumps(payload, ensure_ascii=False, default=str), **metadata)
