"""
Tool Protocol

Capability interface implemented by every tool variant (builtin, custom and
MCP-backed). The dispatcher only relies on this contract.
"""

from enum import Enum
from typing import Any, Protocol

from agentloop.core.cancellation import CancellationToken
from agentloop.core.domain.config import SideEffect
from agentloop.core.domain.messages import ToolResult


class ToolKind(str, Enum):
    """Origin of a registered tool."""

    BUILTIN = "builtin"
    CUSTOM = "custom"
    MCP = "mcp"


class ToolProtocol(Protocol):
    """A named, invocable capability."""

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def parameters_schema(self) -> dict[str, Any]: ...

    @property
    def kind(self) -> ToolKind: ...

    @property
    def side_effect(self) -> SideEffect: ...

    @property
    def requires_approval(self) -> bool: ...

    async def invoke(
        self, arguments: dict[str, Any], cancel_token: CancellationToken
    ) -> ToolResult:
        """
        Run the tool.

        Args:
            arguments: Schema-validated argument payload
            cancel_token: Session cancellation signal; long-running handlers
                check it between sub-steps and raise ToolCancelledError

        Returns:
            ToolResult with a success payload or a failure description
        """
        ...
