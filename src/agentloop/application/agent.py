"""
Agent Facade

Public entry point of the runtime:

    agent = Agent(create_config(tools=builtin_tools()))
    controller = await agent.execute(input_channel, output_channel)
    ...
    controller.pause(); controller.resume(); controller.stop()
    state = await controller.join()

plus the one-shot helpers query() (final text) and stream() (events).
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing
from typing import Any

import structlog

from agentloop.application.factory import McpClientFactory, build_registry, create_llm_provider
from agentloop.application.pipeline import ExecutionPipeline
from agentloop.core.channel import Channel
from agentloop.core.domain.config import AgentConfig
from agentloop.core.domain.errors import AgentError, AlreadyRunning, NotRunning
from agentloop.core.domain.events import OutputEvent, OutputEventType
from agentloop.core.domain.messages import InputMessage
from agentloop.core.domain.state import ControlCommand, SessionSnapshot, SessionState
from agentloop.core.interfaces.llm import LLMProviderProtocol
from agentloop.core.interfaces.session_store import SessionStoreProtocol
from agentloop.core.interfaces.tools import ToolProtocol
from agentloop.core.session import SessionStateMachine


class AgentController:
    """
    Handle to a running session.

    The controller only reads state and enqueues control commands; it never
    touches the conversation history.
    """

    def __init__(self, pipeline: ExecutionPipeline, task: "asyncio.Task[SessionState]"):
        self._pipeline = pipeline
        self._state_machine = pipeline.state_machine
        self._task = task

    @property
    def session_id(self) -> str:
        return self._pipeline.session_id

    @property
    def turn_count(self) -> int:
        return self._state_machine.turn_count

    @property
    def done(self) -> bool:
        return self._task.done()

    def state(self) -> SessionState:
        return self._state_machine.state

    def pause(self) -> None:
        """Request a pause; it takes hold at the next turn boundary."""
        self._state_machine.submit(ControlCommand.PAUSE)

    def resume(self) -> None:
        self._state_machine.submit(ControlCommand.RESUME)

    def stop(self) -> None:
        """Request a stop; in-flight tools are signalled to cancel."""
        self._state_machine.submit(ControlCommand.STOP)

    async def join(self) -> SessionState:
        """Wait until the session reaches its terminal state."""
        return await asyncio.shield(self._task)

    def approve(self, token: str) -> bool:
        """Approve a pending tool call. Returns False for unknown tokens."""
        return self._pipeline.approval_broker.resolve(token, approved=True)

    def deny(self, token: str, reason: str | None = None) -> bool:
        """Deny a pending tool call. Returns False for unknown tokens."""
        return self._pipeline.approval_broker.resolve(token, approved=False, reason=reason)

    def pending_approvals(self) -> list[str]:
        return self._pipeline.approval_broker.pending_tokens()

    def metrics(self) -> dict[str, Any]:
        snapshot = self._pipeline.metrics.snapshot()
        snapshot["turns"] = self._state_machine.turn_count
        snapshot["state"] = self._state_machine.state.value
        return snapshot


class Agent:
    """
    Embeddable agent runtime.

    Args:
        config: Immutable configuration snapshot
        llm_provider: Streaming model provider (defaults to LiteLLMProvider)
        tools: Additional ready-made tools registered after the configured ones
        mcp_client_factory: Builds MCP clients from server configs (defaults
            to stdio clients)
        session_store: Store used to resume and persist sessions
    """

    def __init__(
        self,
        config: AgentConfig,
        llm_provider: LLMProviderProtocol | None = None,
        tools: Iterable[ToolProtocol] = (),
        mcp_client_factory: McpClientFactory | None = None,
        session_store: SessionStoreProtocol | None = None,
    ):
        self.config = config
        self.llm_provider = llm_provider or create_llm_provider(config)
        self.extra_tools = list(tools)
        self.mcp_client_factory = mcp_client_factory
        self.session_store = session_store
        self._controller: AgentController | None = None
        self._starting = False
        self.logger = structlog.get_logger().bind(component="agent")

    @property
    def is_running(self) -> bool:
        return self._starting or (self._controller is not None and not self._controller.done)

    @property
    def controller(self) -> AgentController:
        if self._controller is None:
            raise NotRunning()
        return self._controller

    async def execute(
        self,
        input_channel: Channel,
        output_channel: Channel,
        session: SessionSnapshot | str | None = None,
    ) -> AgentController:
        """
        Start a session driven by the given channels.

        Args:
            input_channel: Channel of InputMessages (or plain strings); closing
                it ends the session once all messages are processed
            output_channel: Channel receiving OutputEvents; closed by the
                session after its terminal event
            session: Snapshot or session id to resume; a session id unknown
                to the session store starts a new session with that id

        Returns:
            Controller handle for the running session

        Raises:
            AlreadyRunning: If this agent already runs a session
            ConfigError: If the tool set is invalid (e.g. DuplicateToolName)
            McpError: If MCP discovery fails
        """
        if self.is_running:
            raise AlreadyRunning()
        self._starting = True
        try:
            snapshot = await self._resolve_session(session)
            registry, mcp_clients = await build_registry(
                self.config, self.extra_tools, self.mcp_client_factory
            )
            state_machine = SessionStateMachine(
                self.config.max_turns,
                turn_count=snapshot.turn_count,
                session_id=snapshot.session_id,
            )
            pipeline = ExecutionPipeline(
                self.config,
                self.llm_provider,
                registry,
                input_channel,
                output_channel,
                state_machine,
                snapshot=snapshot,
                session_store=self.session_store,
                mcp_clients=mcp_clients,
            )
            task = asyncio.create_task(pipeline.run())
            self._controller = AgentController(pipeline, task)
        finally:
            self._starting = False

        self.logger.info(
            "agent_execute",
            session_id=snapshot.session_id,
            tools=registry.names(),
            resumed=bool(snapshot.messages),
        )
        return self._controller

    async def _resolve_session(self, session: SessionSnapshot | str | None) -> SessionSnapshot:
        if isinstance(session, SessionSnapshot):
            return session
        if isinstance(session, str):
            if self.session_store is not None:
                loaded = await self.session_store.load(session)
                if loaded is not None:
                    return loaded
            return SessionSnapshot(session_id=session, model=self.config.model)
        return SessionSnapshot(model=self.config.model)

    def _channels(self) -> tuple[Channel, Channel]:
        return Channel(self.config.input_buffer), Channel(self.config.output_buffer)

    async def stream(
        self, prompt: InputMessage | str, session: SessionSnapshot | str | None = None
    ) -> AsyncIterator[OutputEvent]:
        """
        Run one prompt and yield its events, ending with the terminal event.

        Leaving the iteration early stops the session.
        """
        input_channel, output_channel = self._channels()
        input_channel.send_nowait(InputMessage.coerce(prompt))
        input_channel.close()

        controller = await self.execute(input_channel, output_channel, session)
        try:
            async for event in output_channel:
                yield event
        finally:
            if not controller.done:
                controller.stop()
                # drain so the pipeline never blocks on a full output channel
                async for _ in output_channel:
                    pass
            await controller.join()

    async def query(self, prompt: InputMessage | str, session: SessionSnapshot | str | None = None) -> str:
        """
        Run one prompt and return the assistant's text.

        Raises:
            AgentError: If the session ends with an Error event
        """
        texts: list[str] = []
        async with aclosing(self.stream(prompt, session)) as events:
            async for event in events:
                if event.type == OutputEventType.PRIMARY and event.text:
                    texts.append(event.text)
                elif event.type == OutputEventType.ERROR:
                    raise AgentError(str(event.error))
        return "\n\n".join(texts)
