"""
Turn Engine

Drives one request/response cycle with the model: sends the conversation
history, consumes the streamed response while emitting partial events, and
reports what the cycle produced. Tool calls found in the response are
completed through complete_tool_calls(), which brackets the dispatcher
batch with ToolStart / ToolComplete events and returns results and tool
messages in call order.

Transient model failures are retried with exponential backoff as long as
nothing of the response has been emitted yet.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from agentloop.core.cancellation import CancellationToken
from agentloop.core.dispatcher import ToolDispatcher
from agentloop.core.domain.config import AgentConfig, BuiltinTool
from agentloop.core.domain.errors import ModelApiError
from agentloop.core.domain.events import OutputEvent
from agentloop.core.domain.messages import Message, ToolCall, ToolResult
from agentloop.core.interfaces.llm import LLMProviderProtocol
from agentloop.core.registry import ToolRegistry
from agentloop.infrastructure.tools.tool_converter import (
    tool_result_to_message,
    tools_to_openai_format,
)

EventSink = Callable[[OutputEvent], Awaitable[None]]


class TurnStatus(str, Enum):
    CONTINUE = "continue"
    DONE = "done"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class TurnOutcome:
    """
    Result of one model cycle.

    - CONTINUE: messages holds the assistant message, tool_calls the batch
      still to execute
    - DONE: final_message is the assistant's answer
    - FAILED: error is the model failure that ended the turn
    - INTERRUPTED: the session was stopped while the model was streaming
    """

    status: TurnStatus
    messages: tuple[Message, ...] = ()
    tool_calls: tuple[ToolCall, ...] = ()
    final_message: Message | None = None
    error: BaseException | None = None

    @classmethod
    def continue_with(cls, message: Message) -> "TurnOutcome":
        return cls(TurnStatus.CONTINUE, messages=(message,), tool_calls=message.tool_calls)

    @classmethod
    def done(cls, message: Message) -> "TurnOutcome":
        return cls(TurnStatus.DONE, messages=(message,), final_message=message)

    @classmethod
    def failed(cls, error: BaseException) -> "TurnOutcome":
        return cls(TurnStatus.FAILED, error=error)

    @classmethod
    def interrupted(cls) -> "TurnOutcome":
        return cls(TurnStatus.INTERRUPTED)


class _StreamFailure(Exception):
    """Model failure after part of the response was already emitted."""

    def __init__(self, error: ModelApiError):
        super().__init__(str(error))
        self.error = error


class TurnEngine:
    """Runs model cycles and tool batches for the execution pipeline."""

    def __init__(
        self,
        llm_provider: LLMProviderProtocol,
        registry: ToolRegistry,
        dispatcher: ToolDispatcher,
        config: AgentConfig,
        emit: EventSink,
        cancel_token: CancellationToken,
    ):
        self.llm_provider = llm_provider
        self.registry = registry
        self.dispatcher = dispatcher
        self.config = config
        self.cancel_token = cancel_token
        self._emit = emit
        self._openai_tools = tools_to_openai_format(registry)
        self.logger = structlog.get_logger().bind(component="turn_engine")

    async def run_turn(self, history: Sequence[Message], turn_id: int) -> TurnOutcome:
        """
        Run one model call over ``history``.

        Args:
            history: Snapshot of the conversation so far
            turn_id: Turn number used to tag emitted events

        Returns:
            TurnOutcome describing what the model produced
        """
        self.logger.info("turn_started", turn_id=turn_id, history_length=len(history))
        messages = [m.to_openai() for m in history]

        stream_task = asyncio.create_task(self._stream_with_retry(messages, turn_id))
        cancel_wait = asyncio.ensure_future(self.cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {stream_task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            stream_task.cancel()
            raise
        finally:
            cancel_wait.cancel()

        if stream_task not in done:
            stream_task.cancel()
            await asyncio.gather(stream_task, return_exceptions=True)
            self.logger.info("turn_interrupted", turn_id=turn_id)
            return TurnOutcome.interrupted()

        try:
            message = stream_task.result()
        except ModelApiError as e:
            self.logger.error("turn_failed", turn_id=turn_id, error=str(e), retryable=e.retryable)
            return TurnOutcome.failed(e)
        except _StreamFailure as e:
            self.logger.error("turn_failed_mid_stream", turn_id=turn_id, error=str(e))
            return TurnOutcome.failed(e.error)

        if message.tool_calls:
            self.logger.info(
                "turn_tool_calls",
                turn_id=turn_id,
                count=len(message.tool_calls),
                tools=[tc.name for tc in message.tool_calls],
            )
            return TurnOutcome.continue_with(message)

        self.logger.info("turn_final_answer", turn_id=turn_id)
        return TurnOutcome.done(message)

    async def _stream_with_retry(self, messages: list[dict[str, Any]], turn_id: int) -> Message:
        policy = self.config.retry_policy
        for attempt in range(policy.max_attempts):
            emitted = False

            async def emit(event: OutputEvent) -> None:
                nonlocal emitted
                emitted = True
                await self._emit(event)

            try:
                return await self._stream_once(messages, turn_id, emit)
            except ModelApiError as e:
                if emitted:
                    raise _StreamFailure(e) from e
                if not e.retryable or attempt == policy.max_attempts - 1:
                    raise
                backoff = policy.delay_for(attempt)
                self.logger.warning(
                    "llm_stream_retry",
                    turn_id=turn_id,
                    attempt=attempt + 1,
                    backoff_seconds=backoff,
                    error=str(e),
                )
                await self._emit(
                    OutputEvent.detail(
                        f"Model request failed ({e}); retrying in {backoff:.1f}s "
                        f"(attempt {attempt + 2}/{policy.max_attempts})",
                        turn_id,
                    )
                )
                await asyncio.sleep(backoff)
        raise ModelApiError("Retry attempts exhausted")

    async def _stream_once(
        self, messages: list[dict[str, Any]], turn_id: int, emit: EventSink
    ) -> Message:
        content = ""
        tool_calls: dict[int, dict[str, str]] = {}

        async for chunk in self.llm_provider.stream_chat(
            messages=messages,
            tools=self._openai_tools or None,
            model=self.config.model,
            reasoning=self.config.enable_reasoning,
        ):
            chunk_type = chunk.get("type")

            if chunk_type == "token":
                token = chunk.get("content", "")
                if token:
                    content += token
                    if self.config.stream_deltas:
                        await emit(OutputEvent.primary_delta(token, turn_id))

            elif chunk_type == "reasoning":
                text = chunk.get("content", "")
                if text:
                    await emit(OutputEvent.reasoning(text, turn_id))

            elif chunk_type == "detail":
                text = chunk.get("content", "")
                if text:
                    await emit(OutputEvent.detail(text, turn_id))

            elif chunk_type == "tool_call_start":
                tool_calls[chunk.get("index", 0)] = {
                    "id": chunk.get("id", ""),
                    "name": chunk.get("name", ""),
                    "arguments": "",
                }

            elif chunk_type == "tool_call_delta":
                index = chunk.get("index", 0)
                if index in tool_calls:
                    tool_calls[index]["arguments"] += chunk.get("arguments_delta", "")

            elif chunk_type == "tool_call_end":
                index = chunk.get("index", 0)
                if index in tool_calls:
                    tool_calls[index]["arguments"] = chunk.get(
                        "arguments", tool_calls[index]["arguments"]
                    )

        calls = [
            ToolCall.from_raw(tc["id"], tc["name"], tc["arguments"])
            for _, tc in sorted(tool_calls.items())
        ]
        for call in calls:
            if call.argument_error:
                self.logger.warning(
                    "tool_args_parse_failed", tool=call.name, call_id=call.id, error=call.argument_error
                )

        if content:
            await emit(OutputEvent.primary(content, turn_id))
        return Message.assistant(content, calls)

    async def complete_tool_calls(
        self, calls: Sequence[ToolCall], turn_id: int
    ) -> tuple[list[ToolResult], list[Message]]:
        """
        Execute a batch of tool calls and report them on the output channel.

        ToolStart is emitted for every call before the batch runs; ToolComplete
        follows for every call in original call order once the batch is joined.
        Once the session is stopped no further ToolStart goes out: the calls
        not yet announced are recorded as cancelled without being dispatched
        and get no events, only their tool message.

        Returns:
            Results and the matching tool messages, both in call order
        """
        started: list[ToolCall] = []
        for call in calls:
            if not await self._emit_unless_cancelled(OutputEvent.tool_start(call, turn_id)):
                self.logger.info(
                    "tool_start_skipped", turn_id=turn_id, skipped=len(calls) - len(started)
                )
                break
            started.append(call)

        batch_results = await self.dispatcher.execute_batch(started, turn_id)
        results = batch_results + [
            ToolResult.cancelled_result() for _ in range(len(calls) - len(started))
        ]

        tool_messages: list[Message] = []
        for index, (call, result) in enumerate(zip(calls, results)):
            if index < len(started):
                await self._emit(OutputEvent.tool_complete(call, result, turn_id))
                if call.name == BuiltinTool.UPDATE_PLAN.value and result.success:
                    await self._emit(
                        OutputEvent.todo_update(result.metadata.get("todos", []), turn_id)
                    )
            tool_messages.append(tool_result_to_message(call, result))
        return results, tool_messages

    async def _emit_unless_cancelled(self, event: OutputEvent) -> bool:
        """Emit unless the token fires first, also while the sink is full."""
        if self.cancel_token.is_cancelled:
            return False
        send = asyncio.ensure_future(self._emit(event))
        cancel_wait = asyncio.ensure_future(self.cancel_token.wait())
        try:
            await asyncio.wait({send, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send.cancel()
            raise
        finally:
            cancel_wait.cancel()
        if send.done():
            send.result()
            return True
        send.cancel()
        await asyncio.wait({send})
        if send.cancelled():
            return False
        send.result()
        return True
