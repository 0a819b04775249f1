"""
Session State Machine

Single owner of a session's mutable lifecycle state:
- the SessionState, changed only through allowed transitions
- the turn counter checked against max_turns
- the cancellation token fired on Stop

Control commands from the controller handle are queued and applied by the
state machine's own control task, asynchronously to the data path. Pause
is cooperative: it is recorded immediately and takes hold at the next turn
boundary, when the pipeline calls checkpoint(). Stop takes effect at once:
the session moves to Stopping and in-flight work is signalled to unwind.
"""

import asyncio

import structlog

from agentloop.core.cancellation import CancellationToken
from agentloop.core.domain.errors import InvalidTransition
from agentloop.core.domain.state import ALLOWED_TRANSITIONS, ControlCommand, SessionState


class SessionStateMachine:
    """Lifecycle, control-command arbitration and turn accounting for one session."""

    def __init__(self, max_turns: int, turn_count: int = 0, session_id: str | None = None):
        self.max_turns = max_turns
        self.session_id = session_id
        self.cancel_token = CancellationToken()
        self._state = SessionState.IDLE
        self._turn_count = turn_count
        self._pause_requested = False
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._terminal = asyncio.Event()
        self._commands: asyncio.Queue[ControlCommand] = asyncio.Queue()
        self._control_task: asyncio.Task | None = None
        self.history: list[tuple[SessionState, SessionState]] = []
        self.logger = structlog.get_logger().bind(component="session", session_id=session_id)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def turn_count(self) -> int:
        return self._turn_count

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    @property
    def is_stopping(self) -> bool:
        return self._state in (SessionState.STOPPING, SessionState.STOPPED)

    # ------------------------------------------------------------------
    # Control commands
    # ------------------------------------------------------------------

    def submit(self, command: ControlCommand) -> None:
        """Enqueue a control command. Safe to call from any task."""
        self._commands.put_nowait(command)

    def start(self) -> None:
        """Start the control task that applies queued commands."""
        if self._control_task is None:
            self._control_task = asyncio.create_task(self._control_loop())

    async def close(self) -> None:
        """Stop the control task. Commands still queued are dropped."""
        if self._control_task is not None:
            self._control_task.cancel()
            await asyncio.gather(self._control_task, return_exceptions=True)
            self._control_task = None

    async def _control_loop(self) -> None:
        while True:
            command = await self._commands.get()
            self.apply(command)

    def apply(self, command: ControlCommand) -> None:
        """Apply one control command against the current state."""
        self.logger.info("control_command", command=command.value, state=self._state.value)

        if self._state.is_terminal or self._state == SessionState.STOPPING:
            self.logger.debug("control_command_ignored", command=command.value, state=self._state.value)
            return

        if command == ControlCommand.PAUSE:
            if self._state in (SessionState.IDLE, SessionState.RUNNING):
                self._pause_requested = True

        elif command == ControlCommand.RESUME:
            self._pause_requested = False
            if self._state == SessionState.PAUSED:
                self.transition(SessionState.RUNNING)
                self._resumed.set()

        elif command == ControlCommand.STOP:
            self._pause_requested = False
            self.transition(SessionState.STOPPING)
            self.cancel_token.cancel()
            self._resumed.set()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(self, target: SessionState) -> None:
        """
        Move to ``target``.

        Raises:
            InvalidTransition: If the state diagram does not allow the move
        """
        current = self._state
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(current.value, target.value)
        self._state = target
        self.history.append((current, target))
        self.logger.info("state_transition", from_state=current.value, to_state=target.value)
        if target.is_terminal:
            self._terminal.set()

    def begin(self) -> None:
        """Idle -> Running on the first consumed input."""
        if self._state == SessionState.IDLE:
            self.transition(SessionState.RUNNING)

    def finish(self) -> SessionState:
        """
        Move to the matching terminal state at the normal end of the loop.

        A session that is being stopped ends Stopped; otherwise it completes.
        """
        if self._state == SessionState.STOPPING:
            self.transition(SessionState.STOPPED)
        elif not self._state.is_terminal:
            self.transition(SessionState.COMPLETED)
        return self._state

    def fail(self) -> SessionState:
        """Move to Errored, or finish stopping if a Stop already won the race."""
        if self._state == SessionState.STOPPING:
            self.transition(SessionState.STOPPED)
        elif self._state == SessionState.IDLE:
            self.transition(SessionState.RUNNING)
            self.transition(SessionState.ERRORED)
        elif not self._state.is_terminal:
            self.transition(SessionState.ERRORED)
        return self._state

    # ------------------------------------------------------------------
    # Turn boundary
    # ------------------------------------------------------------------

    async def checkpoint(self) -> bool:
        """
        Turn boundary. Applies a pending Pause and waits until resumed.

        Returns:
            False once the session is stopping, True to keep running
        """
        if self._pause_requested and self._state == SessionState.RUNNING:
            self._pause_requested = False
            self.transition(SessionState.PAUSED)
            self._resumed.clear()
            self.logger.info("session_paused", turn_count=self._turn_count)
            await self._resumed.wait()
            self.logger.info("session_resumed", state=self._state.value)
        return not self.is_stopping

    def has_turns_left(self) -> bool:
        return self._turn_count < self.max_turns

    def record_turn(self) -> int:
        """Count one model call and return the new turn number."""
        self._turn_count += 1
        return self._turn_count

    async def wait_terminal(self) -> SessionState:
        await self._terminal.wait()
        return self._state
