"""
Execution Pipeline

Top-level driver of a session. Pulls messages from the input channel, runs
the turn loop (model call, tool batch, follow-up model call, ...) through
the turn engine under the control of the session state machine, and
forwards every produced event to the output channel.

The pipeline exclusively owns the conversation history. It always ends a
session with exactly one terminal event (Completed or Error) and then
closes the output channel.
"""

import asyncio
import time
from collections.abc import Sequence
from enum import Enum

import structlog

from agentloop.core.channel import Channel, ChannelClosed
from agentloop.core.dispatcher import ToolDispatcher
from agentloop.core.domain.config import AgentConfig
from agentloop.core.domain.errors import OutputError
from agentloop.core.domain.events import OutputEvent, SessionMetrics
from agentloop.core.domain.messages import ConversationHistory, InputMessage, Message
from agentloop.core.domain.state import SessionSnapshot, SessionState
from agentloop.core.interfaces.llm import LLMProviderProtocol
from agentloop.core.interfaces.mcp import McpClientProtocol
from agentloop.core.interfaces.session_store import SessionStoreProtocol
from agentloop.core.policy import ApprovalBroker, PolicyGate
from agentloop.core.registry import ToolRegistry
from agentloop.core.session import SessionStateMachine
from agentloop.core.turn_engine import TurnEngine, TurnStatus


class _Ending(str, Enum):
    DONE = "done"
    TURN_LIMIT = "turn_limit"
    STOPPED = "stopped"
    FAILED = "failed"


class ExecutionPipeline:
    """Runs one session from first input to terminal event."""

    def __init__(
        self,
        config: AgentConfig,
        llm_provider: LLMProviderProtocol,
        registry: ToolRegistry,
        input_channel: Channel,
        output_channel: Channel,
        state_machine: SessionStateMachine,
        *,
        snapshot: SessionSnapshot | None = None,
        session_store: SessionStoreProtocol | None = None,
        mcp_clients: Sequence[McpClientProtocol] = (),
        approval_broker: ApprovalBroker | None = None,
    ):
        """
        Args:
            config: Immutable session configuration
            llm_provider: Streaming model provider
            registry: Tools available to the session
            input_channel: Source of InputMessages (or plain strings)
            output_channel: Sink for OutputEvents; closed after the terminal event
            state_machine: Lifecycle owner shared with the controller handle
            snapshot: Previous session to resume (history and turn count)
            session_store: Store used to persist the session, if any
            mcp_clients: MCP connections to close when the session ends
            approval_broker: Broker shared with the controller for approvals
        """
        self.config = config
        self.input = input_channel
        self.output = output_channel
        self.state_machine = state_machine
        self.session_store = session_store
        self.mcp_clients = list(mcp_clients)
        self.approval_broker = approval_broker or ApprovalBroker()
        self.metrics = SessionMetrics(turns=state_machine.turn_count)

        self.snapshot = snapshot or SessionSnapshot(model=config.model)
        if self.snapshot.messages:
            self.history = ConversationHistory(self.snapshot.messages)
        else:
            self.history = ConversationHistory([Message.system(config.full_system_prompt)])

        cancel_token = state_machine.cancel_token
        self.dispatcher = ToolDispatcher(
            registry,
            PolicyGate(config.working_directory),
            config,
            cancel_token,
            approval_broker=self.approval_broker,
            emit=self._emit,
        )
        self.engine = TurnEngine(
            llm_provider, registry, self.dispatcher, config, emit=self._emit, cancel_token=cancel_token
        )

        self._error: OutputError | None = None
        self._terminated = False
        self.logger = structlog.get_logger().bind(
            component="execution_pipeline", session_id=self.snapshot.session_id
        )

    @property
    def session_id(self) -> str:
        return self.snapshot.session_id

    async def _emit(self, event: OutputEvent) -> None:
        if self._terminated:
            self.logger.warning("event_after_terminal", event_type=event.type.value)
            return
        await self.output.send(event)

    async def run(self) -> SessionState:
        """
        Run the session to its terminal state.

        Returns:
            The terminal SessionState (Completed, Stopped or Errored)
        """
        self.state_machine.start()
        self.logger.info(
            "session_started",
            model=self.config.model,
            max_turns=self.config.max_turns,
            resumed_turns=self.state_machine.turn_count,
        )
        try:
            try:
                ending = await self._run_loop()
                await self._save()
            except Exception as e:
                self.logger.error("pipeline_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
                self._error = OutputError.from_exception(e)
                ending = _Ending.FAILED

            terminal = self._terminate(ending)
            await self.output.send(terminal)
            self._terminated = True
            self.logger.info(
                "session_finished",
                state=self.state_machine.state.value,
                turns=self.state_machine.turn_count,
                terminal=terminal.type.value,
            )
        finally:
            self._terminated = True
            self.output.close()
            await self.state_machine.close()
            await self._close_mcp_clients()
        return self.state_machine.state

    def _terminate(self, ending: _Ending) -> OutputEvent:
        """Apply the terminal transition and build the matching terminal event."""
        sm = self.state_machine
        if ending == _Ending.FAILED:
            state = sm.fail()
        else:
            state = sm.finish()

        turn_id = sm.turn_count
        if state == SessionState.STOPPED:
            return OutputEvent.failed(OutputError.interrupted(), turn_id)
        if state == SessionState.ERRORED:
            self.metrics.errors += 1
            return OutputEvent.failed(self._error or OutputError.interrupted(), turn_id)
        return OutputEvent.completed(turn_id)

    async def _run_loop(self) -> _Ending:
        while True:
            item = await self._next_input()
            if item is None:
                return _Ending.STOPPED if self.state_machine.is_stopping else _Ending.DONE

            self.state_machine.begin()
            self.metrics.messages_received += 1
            self.logger.info("input_received", length=len(item.message), images=len(item.images))
            await self._emit(OutputEvent.start(self.state_machine.turn_count))
            self.history.append(Message.user(item.message))

            ending = await self._process_message()
            if ending != _Ending.DONE:
                return ending
            await self._save()

    async def _next_input(self) -> InputMessage | None:
        """Next input message, or None once input is closed or the session is stopping."""
        if self.state_machine.is_stopping:
            return None

        receive = asyncio.ensure_future(self.input.receive())
        cancel_wait = asyncio.ensure_future(self.state_machine.cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {receive, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_wait.cancel()
            if not receive.done():
                receive.cancel()

        if receive not in done:
            return None
        try:
            return InputMessage.coerce(receive.result())
        except ChannelClosed:
            self.logger.info("input_closed")
            return None

    async def _process_message(self) -> _Ending:
        """Turn loop for one input message."""
        sm = self.state_machine
        while True:
            if not await sm.checkpoint():
                return _Ending.STOPPED

            if not sm.has_turns_left():
                self.logger.info("turn_limit_reached", max_turns=sm.max_turns)
                await self._emit(
                    OutputEvent.detail(f"Maximum turns reached ({sm.max_turns})", sm.turn_count)
                )
                return _Ending.TURN_LIMIT

            turn_id = sm.record_turn()
            self.metrics.turns = turn_id
            outcome = await self.engine.run_turn(self.history.snapshot(), turn_id)

            if outcome.status == TurnStatus.INTERRUPTED:
                return _Ending.STOPPED
            if outcome.status == TurnStatus.FAILED:
                self._error = OutputError.from_exception(outcome.error)
                return _Ending.FAILED

            self.history.extend(outcome.messages)
            if outcome.status == TurnStatus.DONE:
                return _Ending.DONE

            results, tool_messages = await self.engine.complete_tool_calls(
                outcome.tool_calls, turn_id
            )
            self.metrics.tool_calls += len(results)
            self.metrics.tool_failures += sum(1 for r in results if not r.success)
            self.history.extend(tool_messages)

    async def _save(self) -> None:
        if self.session_store is None:
            return
        self.snapshot.messages = list(self.history.snapshot())
        self.snapshot.turn_count = self.state_machine.turn_count
        self.snapshot.updated_at = time.time()
        await self.session_store.save(self.snapshot)
        self.logger.debug("session_saved", messages=len(self.history))

    async def _close_mcp_clients(self) -> None:
        for client in self.mcp_clients:
            try:
                await client.close()
            except Exception as e:
                self.logger.warning("mcp_close_failed", server=client.server_name, error=str(e))
