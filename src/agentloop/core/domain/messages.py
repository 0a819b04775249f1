"""
Conversation Messages

Data types exchanged between the consumer, the model and the tools:
- InputMessage: what the consumer pushes into the input channel
- Message: one entry of the append-only conversation history
- ToolCall / ToolResult: a model-requested invocation and its single answer
- ConversationHistory: ordered, append-only message log owned by the pipeline
"""

import json
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentloop.core.domain.errors import PolicyDenied


class Role(str, Enum):
    """Author of a conversation message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ImageInput:
    """
    Image attached to an input message.

    Exactly one of the fields is expected to be set.
    """

    base64: str | None = None
    path: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class InputMessage:
    """User-provided message consumed by the execution pipeline."""

    message: str
    images: tuple[ImageInput, ...] = ()

    @classmethod
    def coerce(cls, value: "InputMessage | str") -> "InputMessage":
        if isinstance(value, InputMessage):
            return value
        return cls(message=str(value))


@dataclass(frozen=True)
class ToolCall:
    """
    A structured request emitted by the model to invoke a named tool.

    Attributes:
        id: Provider-assigned call identifier
        name: Tool name as requested by the model
        arguments: Parsed argument payload
        argument_error: Set when the raw arguments were not valid JSON
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    argument_error: str | None = None

    @classmethod
    def from_raw(cls, call_id: str, name: str, raw_arguments: str | dict | None) -> "ToolCall":
        """Build a ToolCall from streamed (string) or already-decoded arguments."""
        if isinstance(raw_arguments, dict):
            return cls(id=call_id, name=name, arguments=raw_arguments)
        if not raw_arguments or not raw_arguments.strip():
            return cls(id=call_id, name=name, arguments={})
        try:
            parsed = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            return cls(
                id=call_id,
                name=name,
                arguments={},
                argument_error=f"Invalid JSON arguments: {e.msg}",
            )
        if not isinstance(parsed, dict):
            return cls(
                id=call_id,
                name=name,
                arguments={},
                argument_error="Tool arguments must be a JSON object",
            )
        return cls(id=call_id, name=name, arguments=parsed)

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }


class ToolResultStatus(str, Enum):
    """Outcome category of a single tool call."""

    SUCCESS = "success"
    FAILED = "failed"
    DENIED = "denied"
    CANCELLED = "cancelled"
    CANCELLED_TIMEOUT = "cancelled_timeout"


@dataclass(frozen=True)
class ToolResult:
    """
    Answer to exactly one ToolCall.

    Attributes:
        status: Outcome category
        output: Success payload (text)
        error: Failure description for every non-success status
        metadata: Structured side data (e.g. plan items from update_plan)
    """

    status: ToolResultStatus
    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ToolResultStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.status in (ToolResultStatus.CANCELLED, ToolResultStatus.CANCELLED_TIMEOUT)

    @classmethod
    def ok(cls, output: Any = "", **metadata: Any) -> "ToolResult":
        if not isinstance(output, str):
            output = json.dumps(output, ensure_ascii=False, default=str)
        return cls(status=ToolResultStatus.SUCCESS, output=output, metadata=metadata)

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(status=ToolResultStatus.FAILED, error=error)

    @classmethod
    def denied(cls, denial: PolicyDenied) -> "ToolResult":
        return cls(status=ToolResultStatus.DENIED, error=str(denial))

    @classmethod
    def cancelled_result(cls, *, timed_out: bool = False) -> "ToolResult":
        if timed_out:
            return cls(
                status=ToolResultStatus.CANCELLED_TIMEOUT,
                error="Cancelled: handler did not stop within the grace period",
            )
        return cls(status=ToolResultStatus.CANCELLED, error="Cancelled")

    def to_payload(self) -> dict[str, Any]:
        """Serializable view used for tool messages sent back to the model."""
        payload: dict[str, Any] = {"success": self.success, "status": self.status.value}
        if self.output:
            payload["output"] = self.output
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class Message:
    """
    One entry of the conversation history.

    Assistant messages may carry tool_calls; tool messages carry the
    tool_call_id they answer.
    """

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: float = field(default_factory=time.time, compare=False)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Iterable[ToolCall] = ()) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls))

    def to_openai(self) -> dict[str, Any]:
        """Convert to the chat-completions message format."""
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
            if not self.content:
                msg["content"] = None
        if self.role == Role.TOOL:
            msg["tool_call_id"] = self.tool_call_id
            msg["name"] = self.name
        return msg

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for session snapshots."""
        data: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.tool_calls:
            data["tool_calls"] = [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments} for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=Role(data["role"]),
            content=data.get("content") or "",
            tool_calls=tuple(
                ToolCall(id=tc["id"], name=tc["name"], arguments=tc.get("arguments") or {})
                for tc in data.get("tool_calls", [])
            ),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            timestamp=data.get("timestamp", time.time()),
        )


class ConversationHistory:
    """
    Append-only, ordered message log.

    Only the execution pipeline holds a reference that it appends to; every
    other component receives snapshots.
    """

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: list[Message] = list(messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def to_openai(self) -> list[dict[str, Any]]:
        return [m.to_openai() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]
