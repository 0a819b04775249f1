"""Unit tests for SessionStateMachine."""

import asyncio

import pytest

from agentloop.core.domain.errors import InvalidTransition
from agentloop.core.domain.state import ControlCommand, SessionState
from agentloop.core.session import SessionStateMachine


class TestTransitions:
    """Allowed and rejected state changes."""

    def test_initial_state_is_idle(self):
        """A new machine starts Idle with the given turn count."""
        sm = SessionStateMachine(max_turns=3, turn_count=1)
        assert sm.state == SessionState.IDLE
        assert sm.turn_count == 1

    def test_begin_and_finish(self):
        """Idle -> Running -> Completed."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.begin()
        assert sm.finish() == SessionState.COMPLETED
        assert sm.history == [
            (SessionState.IDLE, SessionState.RUNNING),
            (SessionState.RUNNING, SessionState.COMPLETED),
        ]

    def test_terminal_states_are_final(self):
        """No transition leaves a terminal state."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.finish()
        with pytest.raises(InvalidTransition):
            sm.transition(SessionState.RUNNING)

    def test_stopping_only_leads_to_stopped(self):
        """Stopping cannot complete or error; it can only stop."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.STOP)
        assert sm.state == SessionState.STOPPING
        with pytest.raises(InvalidTransition):
            sm.transition(SessionState.COMPLETED)
        assert sm.fail() == SessionState.STOPPED

    def test_fail_from_idle_passes_through_running(self):
        """A setup failure before any input still ends Errored."""
        sm = SessionStateMachine(max_turns=3)
        assert sm.fail() == SessionState.ERRORED

    def test_turn_accounting(self):
        """record_turn counts up to max_turns."""
        sm = SessionStateMachine(max_turns=2)
        assert sm.record_turn() == 1
        assert sm.has_turns_left()
        assert sm.record_turn() == 2
        assert not sm.has_turns_left()


class TestControlCommands:
    """Pause, resume and stop."""

    def test_stop_fires_cancellation(self):
        """Stop moves to Stopping and cancels the token immediately."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.STOP)
        assert sm.cancel_token.is_cancelled
        assert sm.is_stopping

    def test_commands_after_stop_are_ignored(self):
        """Resume cannot undo a stop."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.STOP)
        sm.apply(ControlCommand.RESUME)
        assert sm.state == SessionState.STOPPING

    def test_pause_is_deferred_to_checkpoint(self):
        """Pause is only recorded; the state stays Running."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.PAUSE)
        assert sm.pause_requested
        assert sm.state == SessionState.RUNNING

    def test_resume_before_boundary_cancels_pause(self):
        """A resume arriving before the boundary withdraws the pause."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.PAUSE)
        sm.apply(ControlCommand.RESUME)
        assert not sm.pause_requested

    @pytest.mark.asyncio
    async def test_checkpoint_blocks_while_paused(self):
        """checkpoint() parks the caller until resume."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.PAUSE)

        waiter = asyncio.create_task(sm.checkpoint())
        await asyncio.sleep(0.02)
        assert sm.state == SessionState.PAUSED
        assert not waiter.done()

        sm.apply(ControlCommand.RESUME)
        assert await asyncio.wait_for(waiter, timeout=1) is True
        assert sm.state == SessionState.RUNNING

    @pytest.mark.asyncio
    async def test_checkpoint_returns_false_when_stopped_while_paused(self):
        """Stopping a paused session releases the checkpoint with False."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.apply(ControlCommand.PAUSE)

        waiter = asyncio.create_task(sm.checkpoint())
        await asyncio.sleep(0.02)
        sm.apply(ControlCommand.STOP)

        assert await asyncio.wait_for(waiter, timeout=1) is False
        assert sm.finish() == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_submitted_commands_applied_by_control_task(self):
        """Commands submitted from outside are applied asynchronously."""
        sm = SessionStateMachine(max_turns=3)
        sm.begin()
        sm.start()
        sm.submit(ControlCommand.STOP)

        await asyncio.sleep(0.02)
        assert sm.state == SessionState.STOPPING
        sm.finish()
        assert await asyncio.wait_for(sm.wait_terminal(), timeout=1) == SessionState.STOPPED
        await sm.close()
