"""
Output Events

Events delivered on a session's output channel. Only the execution pipeline
produces them; the consumer reads them in causal order:
- Start opens the processing of one input message
- Primary / PrimaryDelta / Detail / Reasoning carry streamed content
- ToolStart precedes the matching ToolComplete
- Completed or Error is always the last event of a session
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentloop.core.domain.errors import OutputError
from agentloop.core.domain.messages import ToolCall, ToolResult


class OutputEventType(str, Enum):
    """Tag of an output event."""

    START = "start"
    PRIMARY = "primary"
    PRIMARY_DELTA = "primary_delta"
    DETAIL = "detail"
    REASONING = "reasoning"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    TODO_UPDATE = "todo_update"
    APPROVAL_REQUEST = "approval_request"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_EVENT_TYPES = frozenset({OutputEventType.COMPLETED, OutputEventType.ERROR})


@dataclass(frozen=True)
class OutputEvent:
    """
    One event on the output channel.

    The populated fields depend on the type:
    - primary, primary_delta, detail, reasoning: text
    - tool_start: call
    - tool_complete: call and result
    - todo_update: todos
    - approval_request: call and token
    - error: error

    Attributes:
        type: Event tag
        turn_id: Turn counter value when the event was produced
        text: Streamed or final text
        call: Tool call the event refers to
        result: Tool result (tool_complete only)
        todos: Current plan items (todo_update only)
        token: Approval token (approval_request only)
        error: Error description (error only)
    """

    type: OutputEventType
    turn_id: int = 0
    text: str | None = None
    call: ToolCall | None = None
    result: ToolResult | None = None
    todos: tuple[dict[str, Any], ...] = ()
    token: str | None = None
    error: OutputError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    @property
    def is_error(self) -> bool:
        return self.type == OutputEventType.ERROR

    @classmethod
    def start(cls, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.START, turn_id)

    @classmethod
    def primary(cls, text: str, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.PRIMARY, turn_id, text=text)

    @classmethod
    def primary_delta(cls, text: str, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.PRIMARY_DELTA, turn_id, text=text)

    @classmethod
    def detail(cls, text: str, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.DETAIL, turn_id, text=text)

    @classmethod
    def reasoning(cls, text: str, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.REASONING, turn_id, text=text)

    @classmethod
    def tool_start(cls, call: ToolCall, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.TOOL_START, turn_id, call=call)

    @classmethod
    def tool_complete(cls, call: ToolCall, result: ToolResult, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.TOOL_COMPLETE, turn_id, call=call, result=result)

    @classmethod
    def todo_update(cls, todos: list[dict[str, Any]], turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.TODO_UPDATE, turn_id, todos=tuple(todos))

    @classmethod
    def approval_request(cls, call: ToolCall, token: str, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.APPROVAL_REQUEST, turn_id, call=call, token=token)

    @classmethod
    def completed(cls, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.COMPLETED, turn_id)

    @classmethod
    def failed(cls, error: OutputError, turn_id: int = 0) -> "OutputEvent":
        return cls(OutputEventType.ERROR, turn_id, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Flat dictionary view for logging and JSON output."""
        data: dict[str, Any] = {"type": self.type.value, "turn_id": self.turn_id}
        if self.text is not None:
            data["text"] = self.text
        if self.call is not None:
            data["tool"] = self.call.name
            data["call_id"] = self.call.id
            data["arguments"] = self.call.arguments
        if self.result is not None:
            data["result"] = self.result.to_payload()
        if self.todos:
            data["todos"] = list(self.todos)
        if self.token is not None:
            data["token"] = self.token
        if self.error is not None:
            data["error"] = {"kind": self.error.kind.value, "message": str(self.error)}
        return data


@dataclass
class SessionMetrics:
    """Counters exposed through the controller handle."""

    messages_received: int = 0
    tool_calls: int = 0
    tool_failures: int = 0
    errors: int = 0
    turns: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> dict[str, Any]:
        return {
            "messages_received": self.messages_received,
            "tool_calls": self.tool_calls,
            "tool_failures": self.tool_failures,
            "errors": self.errors,
            "turns": self.turns,
            **self.extra,
        }
